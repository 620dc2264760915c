class ServiceError(Exception):
    code = "service_error"

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(ServiceError):
    code = "invalid_request"

    def __init__(self, message: str) -> None:
        super().__init__(400, message)


class NotConfiguredError(ServiceError):
    code = "not_configured"

    def __init__(self, message: str) -> None:
        super().__init__(400, message)


class NotFoundError(ServiceError):
    code = "not_found"

    def __init__(self, message: str) -> None:
        super().__init__(404, message)


class CyclicDependencyError(ServiceError):
    code = "cyclic_dependency"

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(409, f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


class UnresolvableVersionError(ServiceError):
    code = "unresolvable_version"

    def __init__(self, message: str) -> None:
        super().__init__(409, message)


class VersionConflictError(UnresolvableVersionError):
    code = "version_conflict"


class InstallFailure(ServiceError):
    code = "install_failed"

    def __init__(self, full_name: str, message: str) -> None:
        super().__init__(500, message)
        self.full_name = full_name


class RuntimeUnavailable(ServiceError):
    code = "runtime_unavailable"

    def __init__(self, message: str) -> None:
        super().__init__(503, message)
