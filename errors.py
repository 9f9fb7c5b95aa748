class CertStudioError(Exception):
    """Base class for every error raised by the certificate pipeline."""


class SourceParseError(CertStudioError):
    """The uploaded template or tabular data could not be read."""


class ConfigurationError(CertStudioError):
    """A batch was requested without a complete template/fields/rows set."""


class RowRenderError(CertStudioError):
    def __init__(self, row_index: int, message: str) -> None:
        super().__init__(f"Row {row_index + 1}: {message}")
        self.row_index = row_index


class FieldNotFoundError(CertStudioError):
    pass


class SessionNotFoundError(CertStudioError):
    pass
