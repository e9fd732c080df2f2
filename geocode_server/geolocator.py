import math
import time

from absl import logging

from . import dataset as dataset_utils
from . import spatial_index


class GeoLocator:
    """
    Finds the nearest known place to a given GPS coordinate.

    A GeoLocator owns one loaded Dataset and the SpatialIndex built over it.
    Both are created in the constructor and are read-only afterwards, so a
    single instance can be shared by every request thread. Distances are
    measured on the flat (latitude, longitude) plane.
    """

    def __init__(self, dataset):
        """
        Builds the spatial index for `dataset`.

        Args:
            dataset: A non-empty `dataset.Dataset`.

        Raises:
            spatial_index.EmptyDatasetError: If the dataset has no records.
        """
        start = time.perf_counter()
        self.dataset = dataset
        self.index = spatial_index.build(dataset)
        elapsed = time.perf_counter() - start
        logging.info(
            f"{elapsed:.3f} seconds to build the spatial index over {len(self.index)} records "
            f"(depth {self.index.depth})"
        )

    @classmethod
    def from_csv(cls, csv_file):
        """
        Loads places from a CSV file and indexes them.

        Args:
            csv_file: The path to a CSV file with a header line and the columns
                lat, lon, name, admin1, admin2, admin3.

        Returns:
            A ready GeoLocator.
        """
        return cls(dataset_utils.load_csv(csv_file))

    def __len__(self):
        return len(self.index)

    def nearest_city(self, latitude, longitude):
        """
        Finds the nearest place to the given latitude and longitude.

        Returns:
            The nearest `dataset.Record`, or None if nothing is indexed.
        """
        return self.index.nearest((latitude, longitude))

    def nearest_match(self, latitude, longitude, max_distance=None):
        """
        Finds the nearest place, optionally within a cutoff.

        Args:
            latitude: The latitude of the location.
            longitude: The longitude of the location.
            max_distance: If given, matches farther than this many degrees on
                the flat plane are discarded.

        Returns:
            A `spatial_index.Match`, or None if there is no match.
        """
        match = self.index.nearest_match((latitude, longitude))
        if match is None:
            return None
        if max_distance is not None and math.sqrt(match.distance) > max_distance:
            return None
        return match
