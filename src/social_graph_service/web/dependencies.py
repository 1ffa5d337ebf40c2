# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
FastAPI dependencies for the HTTP interface.

The application context lives on ``app.state.context``; handlers never
reach for module-level globals.
"""

import logging

from fastapi import Depends, HTTPException, Request

from ..context import AppContext
from ..services.user_service import UserService

logger = logging.getLogger(__name__)


def get_context(request: Request) -> AppContext:
    """Get the application context opened by the lifespan (or injected by tests)."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Storage not initialized")
    return context


def get_user_service(context: AppContext = Depends(get_context)) -> UserService:
    """Get a UserService bound to the application context."""
    return context.user_service()
