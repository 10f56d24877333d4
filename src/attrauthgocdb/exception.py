class AttrAuthError(Exception):
    pass


class ConfigurationError(AttrAuthError):
    pass


class RegistryUnavailable(AttrAuthError):
    def __init__(self, message="API request failed", status_code=None):
        AttrAuthError.__init__(self, message)
        self.status_code = status_code


class DeadlineExceeded(RegistryUnavailable):
    pass


class UnknownStateHandle(AttrAuthError):
    pass
