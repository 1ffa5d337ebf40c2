"""Social Graph Service: users, friendships and a popularity graph over HTTP."""

__version__ = "1.0.0"
