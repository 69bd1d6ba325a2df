"""
Constants Module

Centralized names, label keys and API coordinates used by the RBAC reconciler.
The object names and keys are shared with other operator components and must
not change.
"""


class KubernetesConstants:
    """Kubernetes-related constants with improved enum-based structure"""

    from enum import Enum

    # API Group constants - simple attributes for extensible values
    RBAC_API_GROUP = "rbac.authorization.k8s.io"
    SECURITY_API_GROUP = "security.openshift.io"
    SECURITY_API_VERSION = "v1"
    TRIGGERS_API_GROUP = "triggers.tekton.dev"
    OPERATOR_API_GROUP = "operator.tekton.dev"
    OPERATOR_API_VERSION = "v1alpha1"
    CORE_API_GROUP = ""  # Core API group (empty string)

    # Label constants - simple attributes for standard Kubernetes labels
    PART_OF_LABEL = "app.kubernetes.io/part-of"
    PART_OF_VALUE = "tekton-pipelines"

    # Namespaces matching this pattern are platform-reserved and never reconciled
    NAMESPACE_IGNORE_PATTERN = r"^(openshift|kube)-"

    class RBACVerb(str, Enum):
        """RBAC verbs used in the managed role definitions"""
        GET = "get"
        LIST = "list"
        WATCH = "watch"
        USE = "use"

        def __str__(self) -> str:
            """Return the verb value for use in RBAC rules"""
            return self.value

        @classmethod
        def get_read_verbs(cls) -> list:
            """Get all read-only RBAC verbs"""
            return [cls.GET.value, cls.LIST.value, cls.WATCH.value]

    class RoleKind(str, Enum):
        """Kinds a RoleBinding can reference"""
        ROLE = "Role"
        CLUSTER_ROLE = "ClusterRole"

        def __str__(self) -> str:
            return self.value

    class ResourceName(str, Enum):
        """Plural resource names used with the custom objects API"""
        SECURITY_CONTEXT_CONSTRAINTS = "securitycontextconstraints"
        CLUSTER_INTERCEPTORS = "clusterinterceptors"
        INSTALLER_SETS = "tektoninstallersets"
        TEKTON_CONFIGS = "tektonconfigs"

        def __str__(self) -> str:
            """Return the resource name for use in Kubernetes API calls"""
            return self.value


class ResourceNames:
    """Fixed names of the objects owned by the reconciler"""

    SCC_ROLE = "pipelines-scc-role"
    SCC_CLUSTER_ROLE = "pipelines-scc-clusterrole"
    SCC_ROLE_BINDING = "pipelines-scc-rolebinding"
    PIPELINE_SERVICE_ACCOUNT = "pipeline"
    LEGACY_ROLE_BINDING = "openshift-pipelines-edit"
    LEGACY_CLUSTER_ROLE = "edit"
    CLUSTER_INTERCEPTORS = "openshift-pipelines-clusterinterceptors"
    TRUSTED_CA_BUNDLE_CONFIGMAP = "config-trusted-cabundle"
    SERVICE_CA_BUNDLE_CONFIGMAP = "config-service-cabundle"

    # Removed in later releases; only looked up to be cleaned away
    OBSOLETE_EDIT_ROLE_BINDING = "edit"
    OBSOLETE_INSTALLER_SET = "rbac-resources"


class LabelKeys:
    """Label and annotation keys read or written by the reconciler"""

    NAMESPACE_VERSION = "openshift-pipelines.tekton.dev/namespace-reconcile-version"
    NAMESPACE_TRUSTED_CONFIG_VERSION = "openshift-pipelines.tekton.dev/namespace-trusted-configmaps-version"
    NAMESPACE_SCC_ANNOTATION = "operator.tekton.dev/scc"

    INJECT_TRUSTED_CABUNDLE = "config.openshift.io/inject-trusted-cabundle"
    INJECT_SERVICE_CABUNDLE = "service.beta.openshift.io/inject-cabundle"

    CREATED_BY = "operator.tekton.dev/created-by"
    INSTALLER_SET_TYPE = "operator.tekton.dev/type"
    RELEASE_VERSION = "operator.tekton.dev/release-version"
    TARGET_NAMESPACE = "operator.tekton.dev/target-namespace"


class BookkeepingConstants:
    """Identity of the per-release bookkeeping TektonInstallerSet"""

    KIND = "TektonInstallerSet"
    CREATED_BY_VALUE = "RBAC"
    INSTALLER_SET_TYPE = "rhosp-rbac"
    NAME_PREFIX = "rhosp-rbac-"

    @classmethod
    def selector_labels(cls) -> dict:
        return {
            LabelKeys.CREATED_BY: cls.CREATED_BY_VALUE,
            LabelKeys.INSTALLER_SET_TYPE: cls.INSTALLER_SET_TYPE,
        }


class ParamNames:
    """Feature toggles carried as string params on the parent configuration"""

    CREATE_RBAC_RESOURCE = "createRbacResource"
    CREATE_CA_BUNDLE_CONFIGMAPS = "createCABundleConfigMaps"
    LEGACY_PIPELINE_RBAC = "legacyPipelineRbac"

    TRUE = "true"
    FALSE = "false"


class EventConstants:
    """Values for the Warning event written when a requested SCC is missing"""

    GENERATE_NAME = "pipelines-scc-failure-"
    REASON = "RequestedSCCNotFound"
    ACTION = "SCCNotUpdated"
    TYPE_WARNING = "Warning"
    REPORTING_COMPONENT = "openshift-pipelines-operator"
    MESSAGE = "SCC '{scc}' requested in annotation '{annotation}' not found, SCC not updated in the namespace"


class ReconcileConstants:
    """Control loop timings (seconds)"""

    DEFAULT_PERIOD = 600
    DEFAULT_RETRY_DELAY = 5
    DEFAULT_CONFIG_FILE = "pipelines-rbac-config.yaml"
    DEFAULT_TEKTON_CONFIG_NAME = "config"
    DEFAULT_TARGET_NAMESPACE = "openshift-pipelines"
