from typing import Optional, Any
from pathlib import Path
import time

from .config import DepositConfig
from .console import console


def create_profiler(config: "DepositConfig") -> Optional[Any]:
    """Create a torch profiler if profiling is enabled."""
    if not config.profile_enabled:
        return None

    from torch.profiler import profile, ProfilerActivity, schedule

    activities = [ProfilerActivity.CPU]
    if str(config.device).startswith("cuda"):
        activities.append(ProfilerActivity.CUDA)
    # MPS kernels are not visible to the profiler; CPU-side dispatch still is

    return profile(
        activities=activities,
        schedule=schedule(
            wait=0,
            warmup=config.profile_warmup_steps,
            active=config.profile_active_steps,
            repeat=1,
        ),
        on_trace_ready=lambda p: save_profiler_trace(p, config.profile_output_dir),
        record_shapes=True,
        profile_memory=True,
    )


def save_profiler_trace(profiler, output_dir: Path) -> Path:
    """Save profiler trace and print summary."""
    output_dir.mkdir(parents=True, exist_ok=True)

    trace_path = output_dir / f"deposit_trace_{int(time.time())}.json"
    profiler.export_chrome_trace(str(trace_path))
    console.success("Profiler trace saved", detail=f"{trace_path} (open in chrome://tracing)")
    console.info("\n" + profiler.key_averages().table(sort_by="cpu_time_total", row_limit=20))
    return trace_path
