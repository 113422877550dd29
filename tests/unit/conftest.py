"""
单元测试公共夹具

外部工具（makensis、7za、卸载器存根、签名）全部由 FakeToolchain 模拟，不启动任何真实进程。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from nsiforge.build.process import ProcessResult, ProcessRunner
from nsiforge.config.schema import BuildConfig


@dataclass
class Call:
    command: List[str]
    input_text: Optional[str] = None
    cwd: Optional[Path] = None
    env: Optional[Dict[str, str]] = None

    @property
    def tool(self) -> str:
        return Path(self.command[0]).name

    @property
    def defines(self) -> Dict[str, Optional[str]]:
        result: Dict[str, Optional[str]] = {}
        for arg in self.command[1:]:
            if arg.startswith("-D"):
                name, sep, value = arg[2:].partition("=")
                result[name] = value if sep else None
        return result

    def command_values(self, name: str) -> List[str]:
        prefix = f"-X{name} "
        return [arg[len(prefix):] for arg in self.command[1:] if arg.startswith(prefix)]


@dataclass
class FakeToolchain(ProcessRunner):
    """模拟外部工具链

    - 7za a：写出归档文件；7za l：返回列表输出
    - makensis：写出 OutFile；带 BUILD_UNINSTALLER 时记录存根应生成的卸载器路径
    - 运行存根（本机直接执行）：写出卸载器
    """
    listing_total: Optional[int] = 4096
    fail_makensis: bool = False
    fail_stub: bool = False
    fail_installer_compile: bool = False
    calls: List[Call] = field(default_factory=list)
    stub_targets: Dict[str, str] = field(default_factory=dict)

    async def run(self, command, *, input_text=None, cwd=None, env=None, timeout=None):
        call = Call(list(command), input_text, cwd, env)
        self.calls.append(call)
        tool = call.tool

        if tool == "7za":
            if command[1] == "a":
                Path(command[-2]).write_bytes(b"7z-payload" * 64)
                return ProcessResult(list(command), 0)
            if self.listing_total is None:
                return ProcessResult(list(command), 2, stderr="Can not open the file as archive")
            listing = f"   Date      Time    Attr   Size   Compressed  Name\n{self.listing_total} 640 3 files\n"
            return ProcessResult(list(command), 0, stdout=listing)

        if tool == "makensis":
            if self.fail_makensis:
                return ProcessResult(list(command), 1, stderr="Error in script \"stdin\" on line 42")
            if self.fail_installer_compile and "BUILD_UNINSTALLER" not in call.defines:
                return ProcessResult(list(command), 1, stderr="Error in script \"stdin\" on line 7")
            out_file = call.command_values("OutFile")[0].strip('"')
            Path(out_file).write_bytes(b"MZ" + b"\0" * 1024)
            defines = call.defines
            if "BUILD_UNINSTALLER" in defines:
                self.stub_targets[out_file] = defines["UNINSTALLER_OUT_FILE"]
            return ProcessResult(list(command), 0, stdout="Output: ok")

        if command[0] in self.stub_targets:
            if self.fail_stub:
                return ProcessResult(list(command), 1, stderr="stub crashed")
            Path(self.stub_targets[command[0]]).write_bytes(b"MZ-uninstaller")
            return ProcessResult(list(command), 0)

        return ProcessResult(list(command), 127, stderr=f"unknown command {command[0]}")

    def calls_of(self, tool: str) -> List[Call]:
        return [c for c in self.calls if c.tool == tool]


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def app_dir(tmp_path: Path) -> Path:
    """最小的应用目录"""
    directory = tmp_path / "win-unpacked"
    (directory / "resources").mkdir(parents=True)
    (directory / "Test App.exe").write_bytes(b"MZ-app")
    (directory / "resources" / "app.asar").write_bytes(b"asar" * 100)
    return directory


@pytest.fixture
def make_config(tmp_path: Path):
    """构造 BuildConfig，默认指向 tmp_path 下的项目与输出目录"""

    def factory(installer: Optional[dict] = None, **overrides) -> BuildConfig:
        data = {
            'app': {
                'id': "com.example.test",
                'name': "test-app",
                'product_name': "Test App",
                'version': "1.2.3",
                'company': "Example Inc.",
            },
            'installer': installer or {'mode': "one-click"},
            'output_dir': str(tmp_path / "dist"),
            'project_dir': str(tmp_path),
            'tools': {'makensis': "makensis"},
        }
        data.update(overrides)
        return BuildConfig.from_dict(data)

    return factory
