"""Exceptions raised above the per-chart layer. Each one aborts the run."""


class HelmChartCiError(Exception):
    """Base class for errors that terminate a CI run."""

    pass


class ConfigurationError(HelmChartCiError):
    """A required input is missing or empty, or the listing cannot be read."""

    pass


class ToolInvocationError(HelmChartCiError):
    """An external executable could not be launched at all."""

    pass


class ChangeDetectionError(HelmChartCiError):
    """git or the hosting API failed while computing the changed charts."""

    pass
