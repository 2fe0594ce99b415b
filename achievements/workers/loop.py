from __future__ import annotations

from dataclasses import dataclass
import logging

from achievements.services.reconcile import OrphanReconciler

logger = logging.getLogger("runtime")


@dataclass
class ReconcileLoop:
    role: str
    reconciler: OrphanReconciler
    dry_run: bool = False

    async def run_once(self) -> bool:
        """Run one sweep; returns True when it found orphans or unresolved references."""
        result = await self.reconciler.reconcile_orphans(dry_run=self.dry_run)
        if not result.findings and not result.unresolved:
            return False

        logger.warning(
            "reconcile sweep found orphans",
            extra={
                "role": self.role,
                "scanned": result.scanned,
                "findings": len(result.findings),
                "repaired": len(result.repaired),
                "failed": len(result.failed),
                "unresolved": len(result.unresolved),
                "dry_run": str(result.dry_run).lower(),
            },
        )
        return True
