"""
Survey analytics core.

Takes a rectangular survey dataset and produces:
- a catalogue of data-quality issues
- point estimates with confidence intervals for selected variables
- trend and distribution aggregates for reporting

Presentation (pages, charts, file upload) lives outside this package and only
reads the structures returned here.
"""

from statsense.config import APP_VERSION as __version__  # noqa: F401
