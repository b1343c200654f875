"""
Error taxonomy for Forest

ConfigurationMissing, NotFound and DataIntegrityViolation reach the caller as
failure messages. ProviderUnavailable never leaves the generator layer: it is
absorbed by falling back to the deterministic generators.
"""


class ForestError(Exception):
    """Base class for user-visible planning errors"""
    pass


class ConfigurationMissing(ForestError):
    """No active project, or the project has no config document"""
    pass


class NotFound(ForestError):
    """Unknown block, path or node"""
    pass


class DataIntegrityViolation(ForestError):
    """A stored document is malformed, or belongs to a different project, path or date than requested"""
    pass


class ProviderUnavailable(ForestError):
    """The intelligence provider failed, timed out or answered off-schema"""
    pass
