"""
Pyrite analysis pipelines

CLI scripts for:
- preprocess: LOD censoring, element selection, imputation, CLR
- analyze: UMAP, hierarchical clustering, figures and reports
"""
