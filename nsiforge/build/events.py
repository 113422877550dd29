"""
产物事件

编排器在每个产物开始构建和完成时通知外部（报告、发布等），事件不会反向影响构建逻辑。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ..config.schema import Arch
from ..utils.logging import LogStage, info, success
from ..utils.paths import format_size


@dataclass(frozen=True)
class ArtifactBuildStarted:
    target: str
    file: Path
    arch: Optional[Arch] = None
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ArtifactBuildCompleted:
    target: str
    file: Path
    arch: Optional[Arch] = None
    update_info: Optional[Dict[str, Any]] = None
    safe_artifact_name: Optional[str] = None
    is_write_update_info: bool = False


class ArtifactEventSink(Protocol):
    def artifact_build_started(self, event: ArtifactBuildStarted) -> None:
        ...

    def artifact_build_completed(self, event: ArtifactBuildCompleted) -> None:
        ...


class LoggingEventSink:
    """把产物事件写到日志"""

    def artifact_build_started(self, event: ArtifactBuildStarted) -> None:
        details = ", ".join(f"{k}={v}" for k, v in event.fields.items())
        info(f"开始构建 {event.target}: {event.file.name} ({details})", stage=LogStage.BUILD)

    def artifact_build_completed(self, event: ArtifactBuildCompleted) -> None:
        size = ""
        if event.file.exists():
            size = f" ({format_size(event.file.stat().st_size)})"
        success(f"已生成 {event.file.name}{size}", stage=LogStage.DONE)


class RecordingEventSink:
    """按顺序记录全部事件，可同时转发给另一个 sink"""

    def __init__(self, delegate: Optional[ArtifactEventSink] = None):
        self.delegate = delegate
        self.events: List[object] = []

    def artifact_build_started(self, event: ArtifactBuildStarted) -> None:
        self.events.append(event)
        if self.delegate is not None:
            self.delegate.artifact_build_started(event)

    def artifact_build_completed(self, event: ArtifactBuildCompleted) -> None:
        self.events.append(event)
        if self.delegate is not None:
            self.delegate.artifact_build_completed(event)

    @property
    def completed(self) -> List[ArtifactBuildCompleted]:
        return [e for e in self.events if isinstance(e, ArtifactBuildCompleted)]
