"""
Core data and analytics layer.

This package contains:
- dataset: dataset container and cell value helpers (missing / numeric parsing)
- errors: analysis error taxonomy
- data_loader: load survey records from a CKAN DataStore
- store: key/value blob persistence for uploaded and cleaned datasets
- schema: numeric / categorical column inference
- quality: data-quality issue detection, resolution tracking and summary
- estimator: point estimates, standard errors and confidence intervals
- trends: bucketed trend estimates
- distribution: equal-width histograms with weighted percentages
- pipeline: full analysis run and generation-tracked result session
- audit: canonical facts derived from an analysis result
"""
