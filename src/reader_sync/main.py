"""Main reader-sync application."""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from .config import AccountConfig, load_config, create_example_config
from .core.actions import PendingAction
from .core.errors import ReaderSyncError
from .core.source import ReaderSource
from .services.client import ReaderClient
from .services.feed_store import FeedStore
from .services.state import StateManager
from .utils.paths import get_log_dir


class ReaderSyncApp:
    """Wires configured accounts to reader sources and drives their updates."""

    def __init__(self, config_file: Optional[Path] = None, state_manager: Optional[StateManager] = None):
        """
        Initialize the application.

        Args:
            config_file: Optional path to configuration file
            state_manager: Optional state manager (defaults to the data dir)
        """
        self.config = load_config(config_file)

        self._setup_logging()

        self.state_manager = state_manager or StateManager()
        self.stores: Dict[str, FeedStore] = {}
        self.sources: Dict[str, ReaderSource] = {}
        for account in self.config.accounts:
            if account.enabled:
                self.sources[account.name] = self._create_source(account)
        self._forget_removed_accounts()

        logging.info(f"reader-sync initialized with {len(self.sources)} account(s)")

    def _setup_logging(self) -> None:
        """Setup logging configuration."""
        log_file = get_log_dir() / "reader-sync.log"

        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.handlers = []  # Clear existing handlers
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

    def _forget_removed_accounts(self) -> None:
        """Discard saved state, pending edits included, of accounts no longer configured."""
        configured = {account.name for account in self.config.accounts}
        for name in self.state_manager.get_saved_accounts():
            if name not in configured:
                self.state_manager.forget_source(name)
                logging.info(f"Discarded saved state of removed account {name}")

    def _create_source(self, account: AccountConfig) -> ReaderSource:
        client = ReaderClient(
            base_url=account.base_url,
            app_id=account.app_id,
            app_key=account.app_key,
            timeout=self.config.request_timeout,
            retry_attempts=self.config.retry_attempts,
        )
        store = FeedStore(account.name, timeout=self.config.request_timeout)
        self.stores[account.name] = store

        source = ReaderSource(
            account.name,
            client,
            store,
            account.email,
            account.password,
            on_action_failed=self._failure_recorder(account.name),
        )
        source.restore(self.state_manager.get_source_state(account.name))
        return source

    def _failure_recorder(self, account: str) -> Callable[[PendingAction, ReaderSyncError], None]:
        def record(action: PendingAction, error: ReaderSyncError) -> None:
            self.state_manager.record_failure(account=account, action=str(action), reason=str(error))
        return record

    def get_source(self, name: Optional[str] = None) -> ReaderSource:
        account = self.config.get_account(name)
        if account.name not in self.sources:
            raise ValueError(f"Account {account.name} is disabled")
        return self.sources[account.name]

    def save_state(self) -> None:
        """Persist snapshots of all sources. Only valid while their workers are stopped."""
        for name, source in self.sources.items():
            self.state_manager.save_source_state(name, source.snapshot())

    def run_pending(self) -> None:
        """Handle everything queued on the sources on this thread, then save."""
        for source in self.sources.values():
            source.process_pending()
        self.save_state()

    def run(self, once: bool = False, verbose: bool = False) -> int:
        """
        Run the synchronization.

        Args:
            once: If True, run one full update and exit
            verbose: If True, show detailed output

        Returns:
            Exit code (0 for success)
        """
        if verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        if not self.sources:
            logging.warning("No enabled accounts configured")
            return 1

        logging.info(f"Starting reader-sync (once={once}, verbose={verbose})")

        try:
            for source in self.sources.values():
                source.trigger_full_update()

            if once:
                self.run_pending()
                logging.info("Synchronization completed")
                return 0

            return self._loop()

        except KeyboardInterrupt:
            logging.info("Interrupted by user")
            return 0

        except Exception as e:
            logging.error(f"Application error: {e}")
            if verbose:
                logging.exception("Full traceback:")
            return 1

    def _loop(self) -> int:
        for source in self.sources.values():
            source.start()

        last_full_update = time.monotonic()
        try:
            while self.sources:
                time.sleep(self.config.poll_interval)

                full_due = time.monotonic() - last_full_update >= self.config.full_update_interval
                if full_due:
                    last_full_update = time.monotonic()

                for name, source in list(self.sources.items()):
                    if full_due:
                        source.trigger_full_update()
                    elif not source.trigger_quick_update():
                        logging.info(f"Source {name} no longer scheduled")
                        source.stop()
                        del self.sources[name]
                        continue
                    source.request_snapshot(self._saver(name))
        finally:
            for source in self.sources.values():
                source.stop(timeout=self.config.request_timeout)
            self.save_state()

        return 0

    def _saver(self, name: str) -> Callable[[Dict], None]:
        def save(snapshot: Dict) -> None:
            self.state_manager.save_source_state(name, snapshot)
        return save

    def get_info(self) -> Dict:
        """
        Get application information.

        Returns:
            Dictionary with application info
        """
        from . import __version__

        info = {
            "version": __version__,
            "log_level": self.config.log_level,
            "enabled_accounts": len(self.sources),
            "total_accounts": len(self.config.accounts),
            "poll_interval": self.config.poll_interval,
            "full_update_interval": self.config.full_update_interval,
            "stats": self.state_manager.get_stats(),
        }

        for name, source in self.sources.items():
            status = source.status()
            status["feeds"] = len(self.stores[name].children())
            status["recent_errors"] = list(self.stores[name].errors)
            info[f"{name}_status"] = status

        return info

    def create_example_config(self) -> str:
        """Create example configuration."""
        return create_example_config()
