class CityWatchError(Exception):
    """Base exception for CityWatch errors."""

    pass


class ConfigurationError(CityWatchError):
    """Exception raised for configuration-related errors."""

    pass


class DatabaseError(CityWatchError):
    """Exception raised for database-related errors."""

    pass


class PermissionError(CityWatchError):
    """Exception raised for permission-related errors."""

    pass

