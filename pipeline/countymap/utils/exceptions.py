"""
Pipeline exception hierarchy.

Every stage raises one of these; stage entry points print the message and
exit with status 1. Nothing is retried.
"""


class CountyMapError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(CountyMapError):
    """Required settings or credentials are missing."""


class DataSourceError(CountyMapError):
    """A geometry or attribute source could not be fetched or read."""


class JoinError(CountyMapError):
    """Attribute table cannot be joined onto the geometry set."""


class EmptyFeatureCollectionError(CountyMapError):
    """A stage that publishes or renders was handed zero features."""

    def __init__(self, stage: str):
        super().__init__(f"{stage}: feature collection is empty, refusing to publish a blank map")
        self.stage = stage


class TilePackagingError(CountyMapError):
    """The tile packer is missing or exited with an error."""


class PublishError(CountyMapError):
    """The hosted tile service rejected or failed the upload."""
