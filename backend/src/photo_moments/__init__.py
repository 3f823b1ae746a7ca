"""
photo_moments: group photos into moments and pick the best shot of each.
"""

__version__ = "0.1.0"


def curate_photo_records(*args, **kwargs):
    """Cluster and rank the photos in a JSON record file.

    See photo_moments._operations.curate_photo_records for full docs.
    """
    from ._operations import curate_photo_records as _curate

    return _curate(*args, **kwargs)
