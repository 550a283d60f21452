"""
Pydantic models for scan data, API requests and responses
"""
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator


# ========== Enums ==========

class ScanDirection(str, Enum):
    """Order in which the planned arc is first traversed"""
    FORWARD = "forward"
    REVERSE = "reverse"


class CoordinatedMotionState(str, Enum):
    """Best-effort coordinated motion state reported by the controller"""
    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"

    @property
    def is_active(self) -> bool:
        return self is not CoordinatedMotionState.IDLE


class ScanPhase(str, Enum):
    """Lifecycle phase of the scan sequencer"""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"


# ========== Geometry Models ==========

class AxisBounds(BaseModel):
    """Inclusive legal range of the translational axes in scene units"""
    model_config = ConfigDict(frozen=True)

    x_min: float
    x_max: float
    z_min: float
    z_max: float

    @model_validator(mode="after")
    def check_order(self) -> "AxisBounds":
        if self.x_min > self.x_max:
            raise ValueError(f"x_min ({self.x_min}) must not exceed x_max ({self.x_max})")
        if self.z_min > self.z_max:
            raise ValueError(f"z_min ({self.z_min}) must not exceed z_max ({self.z_max})")
        return self


class Waypoint(BaseModel):
    """Planned (x, z) target on the scan arc in scene units"""
    model_config = ConfigDict(frozen=True)

    x: float
    z: float


class ScanSettings(BaseModel):
    """Immutable snapshot of the user scan parameters"""
    model_config = ConfigDict(frozen=True)

    radius: float = Field(..., gt=0, examples=[320.0], description="Arc radius in scene units")
    waypoint_count: int = Field(..., ge=1, examples=[9], description="Number of waypoints on the arc")
    repeats: int = Field(default=1, ge=1, description="Number of back-and-forth cycles")
    start_direction: ScanDirection = Field(
        default=ScanDirection.FORWARD,
        description="Traverse the arc forward or reversed in the first pass"
    )
    start_at_center: bool = Field(
        default=False,
        description="Start the first cycle at the arc midpoint to shorten initial travel"
    )
    dry_run: bool = Field(default=False, description="Simulate telemetry instead of moving hardware")


# ========== Telemetry Models ==========

class ScenePosition(BaseModel):
    x: float
    y: float = 0.0
    z: float


class RawPosition(BaseModel):
    """Controller-native axis positions (any field may be missing); y is the vertical stage"""
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    p: Optional[float] = None
    r: Optional[float] = None


class TelemetrySnapshot(BaseModel):
    """Most recently observed device state"""
    scene_position: ScenePosition
    raw_position: RawPosition
    homed: Optional[float] = None
    status: Optional[str] = None
    timestamp: Optional[str] = None


class ApiStatusResponse(BaseModel):
    """Controller reachability as seen by the telemetry poller"""
    online: bool
    seconds_in_state: Optional[int] = Field(
        default=None,
        description="Seconds since the last online/offline transition"
    )
    writer: Optional[str] = Field(default=None, description="Current owner of the telemetry cell")


# ========== Scan Models ==========

class ScanStateResponse(BaseModel):
    """Sequencer state exposed to the UI"""
    phase: ScanPhase
    active: bool
    paused: bool
    dry_run: bool
    task_id: Optional[str] = None
    current_r: Optional[float] = Field(default=None, description="Unbounded R accumulator in native units")
    current_r_degrees: Optional[float] = Field(default=None, description="Accumulator wrapped to [0, 360) for display")
    previous_lock_origin: Optional[bool] = None
    previous_direct_control_enabled: Optional[bool] = None
    previous_rotation_soft_limit: Optional[float] = None


class ProgressResponse(BaseModel):
    total_steps: int
    completed_steps: int
    percentage: float
    eta_seconds: Optional[float] = None
    eta_display: str = "--"
    average_step_seconds: Optional[float] = None


class PreviewResponse(BaseModel):
    """Planned waypoint list for path preview rendering"""
    settings: Optional[ScanSettings] = None
    waypoints: List[Waypoint] = Field(default_factory=list)
    total_steps: int = 0


# ========== Direct Control Models ==========

class ManualTarget(BaseModel):
    """Operator-edited target pose in scene units and P deflection degrees"""
    x: float = Field(default=0.0, description="Scene X")
    z: float = Field(default=0.0, description="Scene Z")
    p: float = Field(default=0.0, ge=-90, le=90, description="P deflection in degrees")
    r: float = Field(default=0.0, description="R axis in native units")


class DirectControlStatus(BaseModel):
    enabled: bool
    available: bool
    lock_origin: bool
    interval_s: float
    rotation_soft_limit: float
    target: ManualTarget


class LockOriginRequest(BaseModel):
    enabled: bool


# ========== Motion Models ==========

class MoveAbsoluteRequest(BaseModel):
    """Absolute move in controller units"""
    x: float = Field(..., examples=[65.0], description="Target X in controller units")
    y: float = Field(..., examples=[300.0], description="Target Y (vertical stage) in controller units")
    p: float = Field(default=0.0, description="Target P in controller units")
    r: float = Field(default=0.0, description="Target R in controller units")


class StopAxisRequest(BaseModel):
    axis: str = Field(..., examples=["x"], description="Axis name (x, y, p, r, x1, x2)")


# ========== Task Management Models ==========

class TaskResponse(BaseModel):
    """Response when a task is created (202 Accepted)."""
    task_id: str = Field(description="Unique task identifier")
    operation_type: str = Field(description="Type of operation (scan, axis_movement)")
    status: str = Field(description="Current task status")
    status_url: str = Field(description="URL to poll for task status")
    message: str = Field(default="Task created and execution started", description="Human-readable message")


class TaskStatusResponse(BaseModel):
    """Complete task status information."""
    task_id: str = Field(description="Unique task identifier")
    operation_type: str = Field(description="Type of operation")
    status: str = Field(description="Current task status")
    progress: dict = Field(default_factory=dict, description="Operation-specific progress data")
    result: Optional[dict] = Field(default=None, description="Result data when task completes")
    error: Optional[str] = Field(default=None, description="Error message if task failed")
    created_at: Optional[str] = Field(default=None, description="ISO timestamp when task was created")
    started_at: Optional[str] = Field(default=None, description="ISO timestamp when task execution started")
    completed_at: Optional[str] = Field(default=None, description="ISO timestamp when task finished")
