"""
Main Application

Wires authentication, configuration and the reconciler together, runs the
control loop and exposes the command-line interface.
"""

import argparse
import logging
import sys
import threading
from typing import Callable, Optional

from .core import ClusterAuth, ConfigManager, setup_logging, disable_ssl_warnings
from .core.auth import ClusterClients
from .core.config import ReconcilerSettings
from .core.exceptions import RBACReconcilerError, ConfigurationError, ReconcileAgain
from .reconciler import LegacyEditBindingMigration, PassResult, RBACReconciler

logger = logging.getLogger(__name__)


class ReconcilerApp:
    """Main application orchestrator for the RBAC reconciler"""

    def __init__(
        self,
        auth_provider: Optional[ClusterAuth] = None,
        config_provider: Optional[ConfigManager] = None,
        skip_tls: bool = False,
        debug: bool = False,
        sleep: Optional[Callable[[float], bool]] = None,
    ):
        """
        Initialize the application with dependency injection

        Args:
            auth_provider: Authentication provider (defaults to ClusterAuth)
            config_provider: Configuration provider (defaults to ConfigManager)
            skip_tls: Whether to skip TLS verification
            debug: Enable debug logging
            sleep: waits the given seconds, returns True if stopped meanwhile
                   (defaults to waiting on the stop event)
        """
        self.skip_tls = skip_tls
        self.debug = debug

        setup_logging(debug)

        if skip_tls:
            disable_ssl_warnings()

        self.auth = auth_provider or ClusterAuth(skip_tls=skip_tls)
        self.config_manager = config_provider or ConfigManager()
        self.stop_event = threading.Event()
        self.sleep = sleep or self.stop_event.wait

        self.clients: Optional[ClusterClients] = None
        self.settings: Optional[ReconcilerSettings] = None

    def configure_authentication(self, openshift_url: str = None, openshift_token: str = None) -> ClusterClients:
        """
        Configure the cluster clients and check that the cluster answers

        Raises:
            AuthenticationError: If the clients cannot be built or the connection test fails
        """
        clients = self.auth.configure_auth(openshift_url, openshift_token)
        self.auth.test_connection()

        logger.debug(f"Successfully configured authentication for {self.auth.cluster_url}")
        self.clients = clients
        return self.clients

    def load_settings(self, config_path: str = None, from_cluster: bool = False) -> ReconcilerSettings:
        """
        Load settings from a file, optionally overlaid by the TektonConfig on the cluster

        Raises:
            ConfigurationError: If no source is given or the source is invalid
        """
        if not config_path:
            raise ConfigurationError("--config is required")

        settings = self.config_manager.load_config(config_path)
        if from_cluster:
            if self.clients is None:
                raise ConfigurationError("authentication must be configured before loading from the cluster")
            settings = self.config_manager.load_from_cluster(
                self.clients.custom_api, settings.version, base=settings,
            )
        self.settings = settings
        return settings

    def create_reconciler(self) -> RBACReconciler:
        if self.clients is None or self.settings is None:
            raise ConfigurationError("authentication and settings must be configured first")
        return RBACReconciler(self.clients, self.settings, cancel_event=self.stop_event)

    def reconcile_once(self, reconciler: RBACReconciler = None) -> PassResult:
        """
        Run one pass; a ReconcileAgain is followed by one immediate retry.
        """
        reconciler = reconciler or self.create_reconciler()
        try:
            return reconciler.reconcile()
        except ReconcileAgain as e:
            logger.info(f"{e}, reconciling again")
            return reconciler.reconcile()

    def run_forever(self, max_passes: int = None) -> None:
        """
        Control loop: one pass per period, immediate requeue on ReconcileAgain,
        retry delay after an error. Returns when stopped.

        Args:
            max_passes: stop after this many passes (unbounded when None)
        """
        reconciler = self.create_reconciler()
        passes = 0
        while not self.stop_event.is_set():
            if max_passes is not None and passes >= max_passes:
                return
            passes += 1

            try:
                result = reconciler.reconcile()
            except ReconcileAgain as e:
                logger.info(f"{e}, requeueing")
                continue
            except RBACReconcilerError as e:
                logger.error(f"Reconciliation failed: {e}")
                self._wait(self.settings.retry_delay_seconds)
                continue
            except Exception as e:
                logger.error(f"Unexpected error during reconciliation: {e}")
                self._wait(self.settings.retry_delay_seconds)
                continue

            self._log_result(result)
            self._wait(self.settings.period_seconds)

    def stop(self) -> None:
        self.stop_event.set()

    def _wait(self, seconds: float) -> None:
        if self.sleep(seconds):
            logger.info("Stop requested")

    def migrate_legacy(self) -> int:
        if self.clients is None:
            raise ConfigurationError("authentication must be configured first")
        migration = LegacyEditBindingMigration(self.clients.core_api, self.clients.rbac_api)
        return migration.run()

    def generate_config(self, output_dir: str = None) -> str:
        return self.config_manager.generate_config_template(output_dir)

    @staticmethod
    def _log_result(result: PassResult) -> None:
        logger.info(
            f"Pass complete: rbac reconciled={len(result.rbac_reconciled)} failed={len(result.rbac_failed)}, "
            f"ca bundles reconciled={len(result.trust_bundle_reconciled)} "
            f"failed={len(result.trust_bundle_failed)}"
        )
        for namespace, error in result.rbac_failed.items():
            logger.warning(f"RBAC pending for namespace {namespace}: {error}")


def create_app(skip_tls: bool = False, debug: bool = False) -> ReconcilerApp:
    """
    Factory function to create ReconcilerApp with default dependencies

    Returns:
        ReconcilerApp: Configured instance
    """
    return ReconcilerApp(skip_tls=skip_tls, debug=debug)


def create_argument_parser():
    """Create and configure argument parser with subcommands using parent parsers"""

    # Common parser: arguments shared by ALL commands
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    # Auth parser: arguments shared by commands that talk to the cluster
    auth_parser = argparse.ArgumentParser(add_help=False)
    auth_parser.add_argument('--skip-tls', action='store_true', help='Skip TLS verification for insecure requests')
    auth_parser.add_argument('--openshift-url', help='OpenShift cluster URL')
    auth_parser.add_argument('--openshift-token', help='OpenShift authentication token')

    # Settings parser: arguments shared by commands that reconcile
    settings_parser = argparse.ArgumentParser(add_help=False)
    settings_parser.add_argument('--config', help='Configuration file path')
    settings_parser.add_argument('--from-cluster', action='store_true',
                                 help='Read SCC settings and params from the TektonConfig on the cluster')

    parser = argparse.ArgumentParser(
        description='Pipelines RBAC Reconciler - keep per-namespace pipeline RBAC, SCC grants and CA bundles in place',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pipelines-rbac generate-config --output ./config
  pipelines-rbac once --config pipelines-rbac-config.yaml
  pipelines-rbac run --config pipelines-rbac-config.yaml --from-cluster
  pipelines-rbac migrate-legacy --skip-tls

Use --help with specific commands for detailed help.
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser(
        'run',
        parents=[common_parser, auth_parser, settings_parser],
        help='Reconcile continuously',
        description='Run reconciliation passes until interrupted'
    )

    subparsers.add_parser(
        'once',
        parents=[common_parser, auth_parser, settings_parser],
        help='Run a single reconciliation pass',
        description='Run one reconciliation pass and exit non-zero on failure'
    )

    subparsers.add_parser(
        'migrate-legacy',
        parents=[common_parser, auth_parser],
        help='Migrate the legacy edit role bindings',
        description='Remove the pipeline service account from legacy "edit" role bindings'
    )

    generate_parser = subparsers.add_parser(
        'generate-config',
        parents=[common_parser],
        help='Generate a configuration template',
        description='Write a configuration template (stdout by default, use --output to save to file)'
    )
    generate_parser.add_argument('--output', help='Output directory for the generated file')

    return parser


def handle_run_command(args, app: ReconcilerApp) -> int:
    app.configure_authentication(args.openshift_url, args.openshift_token)
    app.load_settings(args.config, args.from_cluster)
    try:
        app.run_forever()
    except KeyboardInterrupt:
        app.stop()
        print("\nReconciler stopped by user.")
    return 0


def handle_once_command(args, app: ReconcilerApp) -> int:
    app.configure_authentication(args.openshift_url, args.openshift_token)
    app.load_settings(args.config, args.from_cluster)
    result = app.reconcile_once()
    app._log_result(result)
    if result.rbac_failed or result.trust_bundle_failed:
        return 1
    return 0


def handle_migrate_legacy_command(args, app: ReconcilerApp) -> int:
    app.configure_authentication(args.openshift_url, args.openshift_token)
    changed = app.migrate_legacy()
    print(f"Migrated {changed} namespace(s)")
    return 0


def handle_generate_config_command(args, app: ReconcilerApp) -> int:
    if not args.output:
        print(app.config_manager.get_config_template_content(), end='')
        return 0
    config_file = app.generate_config(args.output)
    print(f"Configuration template generated: {config_file}")
    return 0


# Command dispatcher mapping
COMMAND_HANDLERS = {
    'run': handle_run_command,
    'once': handle_once_command,
    'migrate-legacy': handle_migrate_legacy_command,
    'generate-config': handle_generate_config_command,
}


def main(argv=None) -> int:
    """Main entry point"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    skip_tls = getattr(args, 'skip_tls', False)
    debug = getattr(args, 'debug', False)

    # Config file values apply when the flags are not given
    config_path = getattr(args, 'config', None)
    if config_path:
        try:
            file_settings = ConfigManager().load_config(config_path)
        except ConfigurationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        skip_tls = skip_tls or file_settings.skip_tls
        debug = debug or file_settings.debug

    app = create_app(skip_tls=skip_tls, debug=debug)

    try:
        return COMMAND_HANDLERS[args.command](args, app)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 1
    except RBACReconcilerError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
