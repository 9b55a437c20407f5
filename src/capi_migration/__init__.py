"""capi-migration - Migrate Giant Swarm clusters to upstream Cluster API resources."""

import logging
import warnings

__version__ = "0.1.0"
__author__ = "Giant Swarm"
__license__ = "Apache-2.0"

PROJECT_NAME = "capi-migration"
PROJECT_DESCRIPTION = "Controllers transforming GS clusters into CAPI clusters."
PROJECT_SOURCE = "https://github.com/giantswarm/capi-migration"

# Suppress verbose third-party library logging
logging.getLogger("kubernetes").setLevel(logging.WARNING)
logging.getLogger("kubernetes.client.rest").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("urllib3.connectionpool").setLevel(logging.ERROR)
logging.getLogger("botocore").setLevel(logging.WARNING)
logging.getLogger("boto3").setLevel(logging.WARNING)
logging.getLogger("azure").setLevel(logging.WARNING)
logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(logging.ERROR)
logging.getLogger("hvac").setLevel(logging.WARNING)

warnings.filterwarnings("ignore", module="urllib3")
