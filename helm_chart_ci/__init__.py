"""
CI automation for monorepos of Helm charts.

Validates manifests, refreshes dependency locks and runs unit tests for every
chart in the repository listing, then reports the results to the job summary.
"""

__version__ = "1.0.0"
