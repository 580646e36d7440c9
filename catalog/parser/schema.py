"""
Catalog Schema - data models shared by the store, the indexer and search.

Asset rows come out of SQLite as dicts and are validated into these models
before they leave the catalog package; API payloads use the same models.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


AssetType = Literal['image', 'video', 'other']
AssetStatus = Literal[
    'unsorted', 'review_requested', 'pending', 'approved', 'archived', 'offline', 'tagged'
]
SyncState = Literal['idle', 'scanning', 'indexing']

ASSET_STATUSES = (
    'unsorted', 'review_requested', 'pending', 'approved', 'archived', 'offline', 'tagged'
)


class Tag(BaseModel):
    """A user tag. `color` is a CSS color string or None."""
    id: str
    name: str
    color: Optional[str] = None


class Comment(BaseModel):
    id: str
    authorId: str
    text: str
    timestamp: int


class Asset(BaseModel):
    """
    One catalogued media file.

    `metadata` stays an open dict: keys are optional and absence means
    "unknown". Well-known keys: fileSize, width, height, duration, prompt,
    seed, model, platform, platformUrl, authorId, project, scene, shot,
    liked, comments, inputs, embedding.
    """

    id: str = Field(..., description="Stable opaque identifier")
    root_path: str = Field(..., description="Absolute watched root")
    path: str = Field(..., description="Path relative to root_path, forward slashes")
    type: AssetType
    status: AssetStatus = 'unsorted'
    created_at: int = Field(..., description="Milliseconds since epoch, immutable")
    updated_at: int = Field(..., description="Milliseconds since epoch")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    # Populated by hydration / search, never stored on the row
    tags: List[Tag] = Field(default_factory=list)
    distance: Optional[float] = None

    @property
    def inputs(self) -> List[str]:
        """Lineage parents; tolerates a malformed `inputs` value."""
        val = self.metadata.get('inputs')
        if isinstance(val, list):
            return [str(v) for v in val]
        return []

    @property
    def embedding(self) -> Optional[List[float]]:
        val = self.metadata.get('embedding')
        return val if isinstance(val, list) and val else None


class SearchFilters(BaseModel):
    """
    Structured filter set accepted by SearchService.search().

    All fields are optional; absence means "no constraint". camelCase keys
    (tagIds, relatedToAssetId, ...) are accepted as aliases.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: Optional[AssetType] = None
    status: Optional[str] = None
    statuses: Optional[List[AssetStatus]] = None
    tag_ids: Optional[List[str]] = Field(None, alias='tagIds')
    ids: Optional[List[str]] = None
    date_from: Optional[int] = Field(None, alias='dateFrom')
    date_to: Optional[int] = Field(None, alias='dateTo')
    author_id: Optional[str] = Field(None, alias='authorId')
    project: Optional[str] = None
    scene: Optional[str] = None
    shot: Optional[str] = None
    platform: Optional[str] = None
    platform_url: Optional[str] = Field(None, alias='platformUrl')
    model: Optional[str] = None
    related_to_asset_id: Optional[str] = Field(None, alias='relatedToAssetId')
    semantic: bool = False

    def single_status(self) -> Optional[str]:
        """Legacy single-status mode; 'all' and '' mean no constraint."""
        if self.status and self.status != 'all':
            return self.status
        return None


class FileError(BaseModel):
    file: str
    error: str
    timestamp: int


class FilesByType(BaseModel):
    images: int = 0
    videos: int = 0
    other: int = 0


class SyncStats(BaseModel):
    """Running indexer statistics. get_stats() hands out copies of this."""
    totalFiles: int = 0
    processedFiles: int = 0
    status: SyncState = 'idle'
    lastSync: Optional[int] = None
    rootPath: Optional[str] = None
    currentFile: Optional[str] = None
    filesByType: FilesByType = Field(default_factory=FilesByType)
    embeddingsGenerated: int = 0
    errors: List[FileError] = Field(default_factory=list)
