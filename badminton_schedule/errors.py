"""Exceptions raised by integrations and storage."""


class IntegrationError(Exception):
    """An upstream source (HTTP API, vision service, channel page) failed."""


class StorageError(Exception):
    """The training store could not complete an operation a run depends on."""
