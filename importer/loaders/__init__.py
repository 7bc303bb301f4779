from importer.loaders.table_store import TableStore, InsertResult, FailedRow

__all__ = ["TableStore", "InsertResult", "FailedRow"]
