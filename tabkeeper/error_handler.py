
class TabHostError(Exception):
    """Base class for failures talking to the browser tab host."""
    pass

class HostUnavailable(TabHostError):
    """Raised when the tab snapshot could not be obtained from the host."""
    pass

class HostCloseError(TabHostError):
    """Raised when the host rejects or fails a batched close request."""
    pass

class ExtensionBridgeError(TabHostError):
    """Raised when an RPC to the connected browser extension fails."""
    pass

class InferenceError(Exception):
    """Raised when the language model cannot be built or queried."""
    pass


def create_error_message(context: str, error: Exception) -> str:
    """
    Creates a formatted, user-facing error message.
    """
    reason = str(error) or error.__class__.__name__
    return f"{context}: {reason}"
