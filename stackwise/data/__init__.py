"""Data management for the workflow.

This subpackage handles:
- Stratified train/test splitting
- CSV loading
"""

from stackwise.data.splits import DataSplit, split_dataset
from stackwise.data.loading import load_dataset

__all__ = [
    'DataSplit',
    'split_dataset',
    'load_dataset'
]
