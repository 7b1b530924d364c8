"""State demographic clusters - census tracts to state PCA and hierarchical clustering."""

__version__ = "0.1.0"

from census_clusters.errors import DegenerateCorrelationError as DegenerateCorrelationError
from census_clusters.errors import JoinMismatchError as JoinMismatchError
from census_clusters.errors import MissingDataError as MissingDataError
from census_clusters.models import ClusterEvent as ClusterEvent
from census_clusters.models import ClusterTree as ClusterTree
from census_clusters.pipeline import PipelineSettings as PipelineSettings
from census_clusters.pipeline import StatePipeline as StatePipeline
