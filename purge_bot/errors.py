class PurgeError(Exception):
    """Base class for every failure that aborts a purge run."""


class ElementNotFound(PurgeError):
    """A required control is absent where absence is not tolerated."""


class DeleteNotFoundError(ElementNotFound):
    pass


class WaitTimeout(PurgeError, TimeoutError):
    pass


class NavigationError(PurgeError):
    """Sender search could not be opened or the origin view was not reached."""


class UserAbort(PurgeError):
    pass
