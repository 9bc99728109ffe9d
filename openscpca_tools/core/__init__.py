"""Core analysis modules for openscpca-tools.

This package contains the analysis engines:
- comparison: Jaccard similarity between two labelings of the same cells
- harmonization: Mapping label vocabularies onto a shared set, consensus labels
- annotation: Reference-profile scoring with labels, delta_next and pruning
- simulation: Simulated test datasets shaped like real libraries
- exploration: Marker dot plots and faceted UMAPs
"""
