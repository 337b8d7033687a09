# backend/tripstream/core/errors.py


class ServiceNotConfigured(RuntimeError):
    """An external API key is missing; the calling tool reports a failed result."""

    def __init__(self, service: str, setting: str):
        super().__init__(f"{service} is not configured (set {setting})")
        self.service = service
        self.setting = setting


class OrchestrationError(RuntimeError):
    """The turn cannot produce a usable answer; surfaces as one ``error`` frame."""
