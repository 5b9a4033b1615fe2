from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional, List

JobStatus = Literal[
    "queued",
    "downloading",
    "converting",
    "sampling",
    "analyzing",
    "tab-generation",
    "completed",
    "error",
]
SourceOrigin = Literal["url", "file"]

class JobSource(BaseModel):
    origin: SourceOrigin
    url: Optional[str] = None
    video_id: Optional[str] = None
    local_path: Optional[str] = None
    original_name: Optional[str] = None
    content_type: Optional[str] = None
    # True when the pipeline owns local_path and moves it into the job scratch dir
    consume: bool = False

class Job(BaseModel):
    job_id: str
    source: JobSource
    preferences: Dict[str, Any] = {}
    status: JobStatus = "queued"
    current_step: str = "queued"
    progress_percentage: int = 0
    estimated_remaining_seconds: int = 0
    error: Optional[str] = None
    failed_step: Optional[str] = None
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None

class JobCreateResponse(BaseModel):
    job_id: str
    status: JobStatus

class JobInfo(BaseModel):
    job_id: str
    status: JobStatus
    current_step: str
    progress_percentage: int
    estimated_remaining_seconds: int
    error: Optional[str] = None
    failed_step: Optional[str] = None
    updated_at: str

class YouTubeJobRequest(BaseModel):
    youtube_url: str
    user_preferences: Dict[str, Any] = {}

class VideoMetadata(BaseModel):
    video_id: str
    title: str
    artist: str
    duration: float = 0.0
    thumbnail: Optional[str] = None
    upload_date: Optional[str] = None
    view_count: int = 0
    description: str = ""
    source: str = "synthesized"

class SongMetadata(BaseModel):
    title: str
    artist: str
    duration: float
    video_url: Optional[str] = None
    video_id: Optional[str] = None
    thumbnail: Optional[str] = None

class ChordDetection(BaseModel):
    chord: str
    start_time: float
    duration: float
    confidence: float = Field(ge=0.0, le=1.0)

class TempoEstimate(BaseModel):
    bpm: float = 120.0
    confidence: float = 0.0
    time_signature: str = "4/4"

class KeyEstimate(BaseModel):
    key: str = "C"
    scale: Literal["major", "minor"] = "major"
    confidence: float = 0.0
    related_keys: List[str] = []

class TabNote(BaseModel):
    string: int
    fret: int
    time: float
    duration: float
    chord: str

class Tablature(BaseModel):
    tuning: List[str]
    capo: int = 0
    notes: List[TabNote] = []

class AudioAnalysis(BaseModel):
    duration: float
    sample_rate: int
    channels: int = 1
    bit_depth: int = 16
    rms_level: float = 0.0
    spectral_centroid: float = 0.0
    zero_crossing_rate: float = 0.0
    difficulty: int = 3

class ProcessingResult(BaseModel):
    job_id: str
    status: Literal["completed"] = "completed"
    metadata: SongMetadata
    analysis: Optional[AudioAnalysis] = None
    chords: List[ChordDetection] = []
    tempo: TempoEstimate = TempoEstimate()
    key: KeyEstimate = KeyEstimate()
    tablature: Tablature
    processed_at: str
    user_preferences: Dict[str, Any] = {}
