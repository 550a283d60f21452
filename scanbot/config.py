"""
Configuration management using pydantic-settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class ConsoleSettings(BaseSettings):
    """Scan console configuration settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SCANBOT_",
        case_sensitive=False
    )

    # Motion controller service
    controller_url: str = Field(
        default="http://192.168.178.222:8001/api",
        description="Base URL of the motion controller HTTP service"
    )
    request_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for a single controller request in seconds"
    )
    mock_mode: bool = Field(
        default=False,
        description="Use the in-process simulated motion controller instead of the network service"
    )

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8002, description="Server port")
    log_level: str = Field(default="info", description="Logging level")
    reload: bool = Field(default=False, description="Enable auto-reload on code changes")

    # WebSocket settings
    ws_update_rate_hz: float = Field(
        default=10.0,
        ge=1.0,
        le=100.0,
        description="WebSocket telemetry update rate in Hz"
    )

    # Polling cadence
    telemetry_poll_interval_s: float = Field(
        default=0.05,
        gt=0,
        description="Interval between position polls of the controller"
    )
    scan_poll_interval_s: float = Field(
        default=0.05,
        gt=0,
        description="Cooperative polling interval used while waiting inside a scan step"
    )

    # Scan timing
    move_timeout_s: float = Field(default=20.0, gt=0, description="Translational move timeout in seconds")
    rotate_timeout_s: float = Field(default=25.0, gt=0, description="Rotation timeout in seconds")
    dry_run_settle_s: float = Field(
        default=0.15,
        ge=0,
        description="Fixed settle delay used by the dry-run simulator per move"
    )
    translation_tolerance: float = Field(
        default=1.5,
        gt=0,
        description="Translational completion tolerance in scene units"
    )
    rotation_tolerance: float = Field(
        default=10.0,
        gt=0,
        description="Rotation completion tolerance in native R-axis units"
    )
    progress_window: int = Field(default=6, ge=1, description="Number of step durations averaged for ETA")

    # Scene <-> controller mapping
    pos_x_origin: float = Field(default=1665.0, description="Controller X position of scene x=0")
    pos_x_scale: float = Field(default=5.0, description="Controller X units per scene unit")
    pos_z_origin: float = Field(default=625.0, description="Controller y position of scene z=0")
    pos_z_scale: float = Field(default=25.0, description="Controller y units per scene z unit")
    r_axis_pos_per_rev: float = Field(default=3000.0, gt=0, description="R-axis units per disc revolution")
    p_axis_full_scale: float = Field(default=255.0, gt=0, description="P-axis units at 90 degrees deflection")
    scan_origin_x: float = Field(default=0.0, description="Scan origin X in scene units")
    scan_origin_z: float = Field(default=27.0, description="Scan origin Z in scene units")

    # Device limits (controller units)
    x_pos_min: float = Field(default=-335.0, description="Lowest legal controller X position")
    x_pos_max: float = Field(default=1665.0, description="Highest legal controller X position")
    z_pos_min: float = Field(default=-9375.0, description="Lowest legal position of the vertical stage (controller y)")
    z_pos_max: float = Field(default=625.0, description="Highest legal position of the vertical stage (controller y)")
    r_soft_limit: float = Field(default=3000.0, description="Initial upper soft limit of the R axis")

    # Direct control
    direct_control_interval_s: float = Field(
        default=5.0,
        ge=1.0,
        le=60.0,
        description="Interval of the direct-control position pusher in seconds"
    )


# Global settings instance
settings = ConsoleSettings()
