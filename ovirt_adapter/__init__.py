"""oVirt compute resource adapter package."""

__all__ = [
    "capabilities",
    "cli",
    "client",
    "config",
    "connection",
    "console",
    "constants",
    "exceptions",
    "inheritance",
    "models",
    "ostype",
    "provisioning",
    "reconcile",
    "resource",
    "trust",
    "utils",
]
