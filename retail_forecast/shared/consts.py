from enum import Enum


class EnumEnvironment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class EnumLogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnumStorageBackend(str, Enum):
    MONGO = "mongo"
    MEMORY = "memory"


class EnumDispatchMode(str, Enum):
    LOCAL = "local"
    CELERY = "celery"
