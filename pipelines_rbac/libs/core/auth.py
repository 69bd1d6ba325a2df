"""
Authentication Module

Handles cluster authentication and builds the Kubernetes API clients used by
the reconciler.
"""

import logging
from typing import Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .exceptions import AuthenticationError, ConfigurationError
from .utils import mask_sensitive_info

logger = logging.getLogger(__name__)


class ClusterClients:
    """The three API groups the reconciler talks to"""

    def __init__(self, api_client: client.ApiClient):
        self.api_client = api_client
        self.core_api = client.CoreV1Api(api_client)
        self.rbac_api = client.RbacAuthorizationV1Api(api_client)
        self.custom_api = client.CustomObjectsApi(api_client)


class ClusterAuth:
    """Handles OpenShift authentication and context discovery"""

    def __init__(self, skip_tls: bool = False):
        """
        Initialize authentication handler

        Args:
            skip_tls: Whether to skip TLS verification for requests
        """
        self.skip_tls = skip_tls
        self.cluster_url = None
        self.clients: Optional[ClusterClients] = None

    def configure_auth(self, cluster_url: str = None, token: str = None) -> ClusterClients:
        """
        Configure authentication with provided URL and token, or discover from
        in-cluster config and then kubeconfig.

        Args:
            cluster_url: API server URL (optional)
            token: Bearer token (optional)

        Returns:
            ClusterClients: initialized API clients

        Raises:
            AuthenticationError: If authentication configuration fails
            ConfigurationError: If only one of url/token is provided
        """
        if bool(cluster_url) != bool(token):
            raise ConfigurationError("--openshift-url and --openshift-token must be given together")

        try:
            if cluster_url and token:
                logger.info("Using provided cluster URL and token for authentication")
                api_client = self._client_with_token(cluster_url, token)
            else:
                api_client = self._client_from_context()
        except ConfigurationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Failed to configure authentication: {e}")

        if self.skip_tls:
            api_client.configuration.verify_ssl = False
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        self.clients = ClusterClients(api_client)
        return self.clients

    def _client_with_token(self, cluster_url: str, token: str) -> client.ApiClient:
        configuration = client.Configuration()
        configuration.host = cluster_url
        configuration.api_key = {"authorization": token}
        configuration.api_key_prefix = {"authorization": "Bearer"}
        if self.skip_tls:
            configuration.verify_ssl = False
        self.cluster_url = cluster_url
        logger.debug(f"Configured client for {cluster_url} with token {mask_sensitive_info(token, token)}")
        return client.ApiClient(configuration)

    def _client_from_context(self) -> client.ApiClient:
        # The operator normally runs in-cluster; kubeconfig is for local runs
        try:
            config.load_incluster_config()
            logger.info("Successfully loaded in-cluster config")
        except config.ConfigException as incluster_error:
            logger.debug(f"In-cluster config not available: {incluster_error}")
            config.load_kube_config()
            logger.info("Successfully loaded kubeconfig")

        api_client = client.ApiClient()
        self.cluster_url = api_client.configuration.host
        return api_client

    def test_connection(self) -> bool:
        """
        Test the connection to the cluster

        Raises:
            AuthenticationError: If connection test fails
        """
        if self.clients is None:
            raise AuthenticationError("Not authenticated - no Kubernetes client available")

        try:
            self.clients.core_api.get_api_resources()
            logger.info("Successfully tested connection to the cluster")
            return True
        except ApiException as e:
            raise AuthenticationError(f"Failed to connect to cluster: {e}")
