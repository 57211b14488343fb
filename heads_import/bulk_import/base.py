from abc import ABC, abstractmethod

from heads_import.bulk_import.schemas import ChunkResult, HealthStatus, ImportSession, StatusResult
from heads_import.imports.models import SelectedFile


class BulkImportService(ABC):
    @abstractmethod
    async def init_session(self, file: SelectedFile) -> ImportSession:
        """Upload the workbook and return the validation summary of the new session."""
        ...

    @abstractmethod
    async def process_chunk(self, session_id: str, start_idx: int, chunk_size: int) -> ChunkResult:
        """Persist up to ``chunk_size`` valid records starting at ``start_idx``."""
        ...

    @abstractmethod
    async def get_status(self, session_id: str) -> StatusResult: ...

    @abstractmethod
    async def finalize(self, session_id: str) -> None: ...

    @abstractmethod
    async def check_health(self) -> HealthStatus: ...

    async def close(self) -> None:
        return None
