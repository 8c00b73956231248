"""Exchange balance auto-import."""

from folio.importer.reconciler import AutoImportReconciler, ImporterState, ImportReport

__all__ = ["AutoImportReconciler", "ImportReport", "ImporterState"]
