"""Error taxonomy for the control plane."""

from typing import Optional


class VoyagerError(Exception):
    """Base class for every failure raised by the control plane."""

    retryable = False


class ProtectedTarget(VoyagerError):
    """The tab shows a privileged page the browser refuses to instrument."""

    def __init__(self, url: str):
        super().__init__(f"Cannot debug protected tab: {url or 'unknown'}")
        self.url = url


class NotConnected(VoyagerError):
    """A command was issued without a live debugging session."""

    retryable = True


class ElementNotFound(VoyagerError):
    def __init__(self, element_id: int):
        super().__init__(f"Element with id {element_id} not found")
        self.element_id = element_id


class InvalidArgs(VoyagerError):
    pass


class NoActiveTab(VoyagerError):
    def __init__(self, message: str = "No active tab available"):
        super().__init__(message)


class NoInteractiveElements(VoyagerError):
    def __init__(self, message: str = "No interactive elements found"):
        super().__init__(message)


class ContentUnresponsive(VoyagerError):
    """The element-observation channel of a tab did not answer."""

    retryable = True


class Cancelled(VoyagerError):
    def __init__(self, message: str = "User cancelled"):
        super().__init__(message)


class OracleError(VoyagerError):
    """The decision service could not produce a decision."""


class UnknownAction(VoyagerError):
    def __init__(self, action: object):
        super().__init__(f"Unknown action type: {type(action).__name__}")
        self.action = action


class ProtocolError(VoyagerError):
    """The page rejected a remote-debugging command."""

    def __init__(self, message: str, method: Optional[str] = None):
        super().__init__(message)
        self.method = method
