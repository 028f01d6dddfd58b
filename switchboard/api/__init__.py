from switchboard.api.model import ChatBackend, ModelBackend

__all__ = ["ChatBackend", "ModelBackend"]
