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
Storage backend factory for the Social Graph Service.

Creates and initializes the Qdrant user store.
"""

import logging

from ..config import StorageSettings
from .base import UserStorage
from .qdrant_storage import QdrantUserStorage

logger = logging.getLogger(__name__)


async def create_storage_instance(config: StorageSettings | None = None) -> UserStorage:
    """
    Create and initialize the Qdrant user storage backend.

    Args:
        config: Storage settings; read from the environment when omitted

    Returns:
        Initialized QdrantUserStorage instance
    """
    config = config or StorageSettings()

    logger.info("Creating Qdrant user storage backend instance...")

    storage = QdrantUserStorage(
        collection_name=config.collection_name,
        url=config.url,
        path=config.path,
        scroll_batch_size=config.scroll_batch_size,
    )
    await storage.initialize()
    logger.info(f"QdrantUserStorage initialized successfully ({storage.mode} mode)")

    return storage
