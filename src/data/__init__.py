"""Expression data processing, statistics and visualization utilities.

This package provides pure-Python functions for analysing expression matrices, including:
- Parsing GEO series matrix files and gene identifier maps
- Filtering, transforming and annotating expression matrices and samples
- Per-gene Tweedie generalized linear models for differential expression
- Quality control and gene set intersection plots
"""
