"""Cross-instance change notifications over Redis pub/sub."""

from .broadcaster import EVENT_TYPES, ChangeBroadcaster, ChangeEvent, NullBroadcaster, default_origin

__all__ = ["EVENT_TYPES", "ChangeBroadcaster", "ChangeEvent", "NullBroadcaster", "default_origin"]
