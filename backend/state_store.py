"""
JSON file persistence for the paper portfolio.
"""

import logging
import os

from portfolio import PortfolioManager

logger = logging.getLogger(__name__)

STATE_FILENAME = "portfolio_state.json"


class PortfolioStateStore:
    """Saves and loads a PortfolioManager bundle under data_dir."""

    def __init__(self, data_dir: str = "."):
        self.data_dir = data_dir

    @property
    def path(self) -> str:
        return os.path.join(self.data_dir, STATE_FILENAME)

    def save(self, portfolio: PortfolioManager) -> bool:
        """Write state atomically. Errors are logged, never raised."""
        tmp_path = f"{self.path}.tmp"
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(tmp_path, "w") as f:
                f.write(portfolio.serialize())
            os.replace(tmp_path, self.path)
            return True
        except OSError as e:
            logger.error(f"Error saving portfolio state: {e}")
            return False

    def load(self, portfolio: PortfolioManager) -> bool:
        """Restore saved state if present. Returns True if anything was restored."""
        if not os.path.exists(self.path):
            return False

        try:
            with open(self.path, "r") as f:
                data = f.read()
        except OSError as e:
            logger.error(f"Error loading portfolio state: {e}")
            return False

        restored = portfolio.restore(data)
        if any(restored.values()):
            summary = portfolio.get_summary()
            logger.info(
                f"Loaded portfolio state: cash=${summary.cash:.2f}, "
                f"{summary.position_count} positions, {summary.trade_count} trades"
            )
            return True
        return False
