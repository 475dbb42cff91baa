class LocalLabError(Exception):
    pass


class ConfigurationError(LocalLabError):
    pass


class InvalidStateError(LocalLabError):
    pass


class NotFoundError(LocalLabError):
    pass


class BackendError(LocalLabError):
    pass
