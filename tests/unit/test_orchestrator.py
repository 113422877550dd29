"""
构建编排单元测试

外部工具由 FakeToolchain 模拟，端到端走完 打包 → 符号表 → 脚本 → 卸载器 → 编译 → 更新数据。
"""

import asyncio
from pathlib import Path

import pytest

from nsiforge.build.build_context import BuildError, InvalidConfigurationError
from nsiforge.build.builder import Builder
from nsiforge.build.events import ArtifactBuildCompleted, ArtifactBuildStarted, RecordingEventSink
from nsiforge.build.orchestrator import NsisTarget, plan_build_units
from nsiforge.build.uninstaller import UninstallerMaterializeError
from nsiforge.config.schema import Arch


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _target(config, toolchain, **kwargs) -> NsisTarget:
    kwargs.setdefault('platform', "win32")
    kwargs.setdefault('busy_check', lambda p: True)
    kwargs.setdefault('sleep', RecordingSleep())
    return NsisTarget(config, runner=toolchain, **kwargs)


def _run(target: NsisTarget, archs):
    async def main():
        for arch, app_dir in archs.items():
            await target.build(app_dir, arch)
        return await target.finish_build()

    return asyncio.run(main())


class TestPlanBuildUnits:
    """BuildUnit 计划测试"""

    def test_per_arch_when_not_universal(self, make_config, tmp_path):
        """测试关闭通用安装器时每个架构一个，且都不是通用的"""
        config = make_config({'mode': "one-click", 'build_universal_installer': False})
        units = plan_build_units(config, {Arch.X64: tmp_path / "x64", Arch.IA32: tmp_path / "ia32"})

        assert [list(u.archs) for u in units] == [[Arch.X64], [Arch.IA32]]
        assert not any(u.is_universal for u in units)

    def test_single_universal(self, make_config, tmp_path):
        """测试通用模式下模板不含 ${arch} 时只有一个通用安装器"""
        archs = {Arch.X64: tmp_path / "x64", Arch.ARM64: tmp_path / "arm64"}
        units = plan_build_units(make_config(), archs)

        assert len(units) == 1
        assert units[0].is_universal
        assert units[0].archs == archs

    def test_universal_plus_per_arch(self, make_config, tmp_path):
        """测试模板含 ${arch} 且多个架构时额外按架构构建"""
        config = make_config({'mode': "one-click", 'artifact_name': "${productName}-${arch}.${ext}"})
        units = plan_build_units(config, {Arch.X64: tmp_path, Arch.ARM64: tmp_path})

        assert len(units) == 3
        assert units[0].is_universal
        assert [u.primary_arch for u in units[1:]] == [Arch.X64, Arch.ARM64]

    def test_single_arch_with_arch_macro(self, make_config, tmp_path):
        """测试只有一个架构时不额外构建"""
        config = make_config({'mode': "one-click", 'artifact_name': "${productName}-${arch}.${ext}"})
        assert len(plan_build_units(config, {Arch.X64: tmp_path})) == 1

    def test_web_has_only_universal(self, make_config, tmp_path):
        """测试 Web 安装器总是单个通用安装器"""
        config = make_config({'mode': "web", 'app_package_url': "https://cdn.example.com"})
        units = plan_build_units(config, {Arch.X64: tmp_path, Arch.ARM64: tmp_path})
        assert len(units) == 1 and units[0].is_universal


class TestConfigurationValidation:
    """构造时的配置检查"""

    def test_unknown_macro_in_artifact_name(self, make_config, toolchain):
        """测试文件名模板中的未知宏在启动任何进程前报错"""
        config = make_config({'mode': "one-click", 'artifact_name': "${productName}-${channel}.${ext}"})
        with pytest.raises(InvalidConfigurationError, match="artifact_name"):
            _target(config, toolchain)
        assert toolchain.calls == []

    def test_menu_category_without_company(self, make_config, toolchain):
        """测试 menu_category 为 true 但没有公司名"""
        config = make_config({'mode': "assisted", 'menu_category': True}, app={'name': "a", 'version': "1.0.0"})
        with pytest.raises(InvalidConfigurationError, match="menu_category"):
            _target(config, toolchain)

    def test_missing_license_before_any_process(self, make_config, toolchain):
        """测试显式配置的许可文件不存在时，在打包和编译之前报错"""
        config = make_config({'mode': "assisted", 'license': "missing-license.txt"})
        with pytest.raises(InvalidConfigurationError, match="installer.license: .*missing-license.txt"):
            _target(config, toolchain)
        assert toolchain.calls == []

    def test_existing_resources_accepted(self, make_config):
        """测试资源在项目目录中存在时通过检查"""
        config = make_config({'mode': "assisted", 'license': "license.txt", 'installer_icon': "setup.ico"})
        (config.project_dir / "license.txt").write_text("terms", encoding='utf-8')
        (config.project_dir / "setup.ico").write_bytes(b"ico")
        assert NsisTarget.configuration_errors(config) == []

    def test_all_problems_reported(self, make_config):
        """测试一次返回全部配置错误"""
        config = make_config({
            'mode': "assisted",
            'artifact_name': "${channel}.${ext}",
            'uninstaller_icon': "missing.ico",
        })
        errors = NsisTarget.configuration_errors(config)
        assert [e.split(":")[0] for e in errors] == ["artifact_name", "installer.uninstaller_icon"]

    def test_target_names(self, make_config, toolchain):
        """测试 target 名称"""
        assert _target(make_config(), toolchain).name == "nsis"
        assert _target(make_config({'mode': "assisted"}), toolchain).name == "nsis"
        assert _target(make_config({'mode': "portable"}), toolchain).name == "portable"
        web = make_config({'mode': "web", 'app_package_url': "https://cdn.example.com"})
        assert _target(web, toolchain).name == "nsis-web"


class TestOneClickBuild:
    """一键安装器端到端测试"""

    def test_single_arch(self, make_config, toolchain, app_dir, tmp_path):
        """测试单架构一键安装器：两次编译，卸载器嵌入后删除"""
        events = RecordingEventSink()
        target = _target(make_config(), toolchain, events=events)
        contexts = _run(target, {Arch.X64: app_dir})

        dist = tmp_path / "dist"
        installer = dist / "Test App Setup 1.2.3.exe"
        uninstaller = dist / "Test App Setup 1.2.3__uninstaller.exe"

        makensis = toolchain.calls_of("makensis")
        assert len(makensis) == 2
        stub, main = makensis
        assert "BUILD_UNINSTALLER" in stub.defines
        assert stub.defines["UNINSTALLER_OUT_FILE"] == str(uninstaller)
        assert "BUILD_UNINSTALLER" not in main.defines
        # 存根与主安装器都输出到 -XOutFile 指定的路径，脚本中不能再声明 OutFile
        assert stub.command_values("OutFile") == [f'"{installer}"']
        assert "OutFile" not in stub.input_text
        assert main.defines["UNINSTALLER_OUT_FILE"] == str(uninstaller)
        assert "ONE_CLICK" in main.defines
        assert main.defines["ESTIMATED_SIZE"] == "4"
        assert main.command_values("OutFile") == [f'"{installer}"']

        assert installer.exists()
        assert not uninstaller.exists()
        assert not (dist / "test-app-1.2.3-x64.nsis.7z").exists()
        assert (dist / "Test App Setup 1.2.3.exe.blockmap").exists()

        assert len(contexts) == 1
        context = contexts[0]
        assert context.build_stats['compiler_invocations'] == 2
        assert context.update_info['size'] == installer.stat().st_size

        started = [e for e in events.events if isinstance(e, ArtifactBuildStarted)]
        assert started[0].target == "nsis"
        assert started[0].fields == {'archs': "x64", 'oneClick': True, 'perMachine': False}
        assert [e.file for e in events.completed] == [installer]
        assert events.completed[0].safe_artifact_name == "test-app-setup-1.2.3.exe"

    def test_script_goes_through_stdin(self, make_config, toolchain, app_dir):
        """测试脚本经由标准输入传入且包含共享头部与模板"""
        _run(_target(make_config(), toolchain), {Arch.X64: app_dir})
        main = toolchain.calls_of("makensis")[1]

        assert '!include "StdUtils.nsh"' in main.input_text
        assert "!macro addLangs" in main.input_text
        assert 'Section "install"' in main.input_text

    def test_estimate_omitted_when_listing_fails(self, make_config, toolchain, app_dir):
        """测试归档列表失败时省略估算大小"""
        toolchain.listing_total = None
        _run(_target(make_config(), toolchain), {Arch.X64: app_dir})
        assert "ESTIMATED_SIZE" not in toolchain.calls_of("makensis")[1].defines

    def test_locked_output_waits_then_builds(self, make_config, toolchain, app_dir):
        """测试输出文件被占用两次后释放：恰好等待两次，随后正常编译"""
        checks = []

        def check(path: Path) -> bool:
            checks.append(path)
            return len(checks) > 2

        sleep = RecordingSleep()
        _run(_target(make_config(), toolchain, busy_check=check, sleep=sleep), {Arch.X64: app_dir})

        assert sleep.delays == [2.0, 2.0]
        assert len(toolchain.calls_of("makensis")) == 2

    def test_debug_logging_flag(self, make_config, toolchain, app_dir):
        """测试安装器日志开关"""
        _run(_target(make_config(), toolchain, debug_logging=True), {Arch.X64: app_dir})
        assert "ENABLE_LOGGING" in toolchain.calls_of("makensis")[1].defines


class TestMultiArchBuild:
    """多架构构建测试"""

    def test_universal_and_per_arch_share_payloads(self, make_config, toolchain, tmp_path):
        """测试通用 + 按架构构建共用同一份载荷归档"""
        archs = {}
        for arch in (Arch.X64, Arch.ARM64):
            directory = tmp_path / arch.value
            directory.mkdir()
            (directory / "Test App.exe").write_bytes(b"MZ")
            archs[arch] = directory

        config = make_config({'mode': "one-click", 'artifact_name': "${productName}-${arch}.${ext}"},
                             archs=["x64", "arm64"])
        contexts = _run(_target(config, toolchain), archs)

        assert [c.installer_filename for c in contexts] == ["Test App.exe", "Test App-x64.exe", "Test App-arm64.exe"]
        assert len([c for c in toolchain.calls_of("7za") if c.command[1] == "a"]) == 2
        assert len(toolchain.calls_of("makensis")) == 6

        universal = toolchain.calls_of("makensis")[1]
        assert "APP_64" in universal.defines
        assert "APP_ARM64" in universal.defines

    def test_per_arch_builds_in_submission_order(self, make_config, toolchain, tmp_path):
        """测试非通用模式按登记顺序逐个构建"""
        archs = {}
        for arch in (Arch.IA32, Arch.X64):
            directory = tmp_path / arch.value
            directory.mkdir()
            archs[arch] = directory

        config = make_config({'mode': "one-click", 'build_universal_installer': False}, archs=["ia32", "x64"])
        contexts = _run(_target(config, toolchain), archs)
        assert [c.installer_filename for c in contexts] == ["Test App Setup 1.2.3-ia32.exe", "Test App Setup 1.2.3.exe"]


class TestOtherModes:
    """Web、便携版与回调测试"""

    def test_web_installer(self, make_config, toolchain, app_dir, tmp_path):
        """测试 Web 安装器：应用包作为产物发布，安装器引用下载地址"""
        events = RecordingEventSink()
        config = make_config({'mode': "web", 'app_package_url': "https://cdn.example.com/app"})
        contexts = _run(_target(config, toolchain, events=events), {Arch.X64: app_dir})

        package = tmp_path / "dist" / "test-app-1.2.3-x64.nsis.7z"
        installer = tmp_path / "dist" / "Test App Web Setup 1.2.3.exe"
        assert [e.file for e in events.completed] == [package, installer]
        assert package.exists()

        main = toolchain.calls_of("makensis")[1]
        assert main.defines["APP_PACKAGE_URL"] == "https://cdn.example.com/app"
        assert main.defines["APP_64_NAME"] == package.name
        assert contexts[0].update_info['packages']['x64']['file'] == package.name

    def test_portable(self, make_config, toolchain, app_dir, tmp_path):
        """测试便携版只编译一次，没有卸载器"""
        events = RecordingEventSink()
        config = make_config({'mode': "portable", 'unpack_dir_name': "demo"})
        _run(_target(config, toolchain, events=events), {Arch.X64: app_dir})

        makensis = toolchain.calls_of("makensis")
        assert len(makensis) == 1
        assert makensis[0].defines["UNPACK_DIR_NAME"] == "demo"
        assert "UNINSTALLER_OUT_FILE" not in makensis[0].defines
        assert "RequestExecutionLevel ${REQUEST_EXECUTION_LEVEL}" in makensis[0].input_text

        started = [e for e in events.events if isinstance(e, ArtifactBuildStarted)]
        assert started[0].fields == {'archs': "x64"}
        assert events.completed[0].update_info is None
        assert not events.completed[0].is_write_update_info

    def test_effective_options_hook_stops_build(self, make_config, toolchain, app_dir):
        """测试有效选项回调返回 True 时不再编译"""
        seen = []

        async def hook(symbols):
            seen.append(symbols.get("APP_ID"))
            return True

        events = RecordingEventSink()
        contexts = _run(_target(make_config(), toolchain, events=events, effective_options_hook=hook), {Arch.X64: app_dir})

        assert seen == ["com.example.test"]
        assert toolchain.calls_of("makensis") == []
        assert contexts[0].stopped
        assert events.completed == []

    def test_stub_failure_fails_unit_and_cleans_up(self, make_config, toolchain, app_dir, tmp_path):
        """测试卸载器无法生成时整个 BuildUnit 失败，临时文件被清理"""
        toolchain.fail_stub = True
        target = _target(make_config(), toolchain)

        with pytest.raises(UninstallerMaterializeError):
            _run(target, {Arch.X64: app_dir})
        assert len(toolchain.calls_of("makensis")) == 1
        assert not (tmp_path / "dist" / "test-app-1.2.3-x64.nsis.7z").exists()
        assert not (tmp_path / "dist" / "Test App Setup 1.2.3__uninstaller.exe").exists()
        # 存根已编译到安装器路径，失败后不能留下半成品
        assert not (tmp_path / "dist" / "Test App Setup 1.2.3.exe").exists()

    def test_installer_compile_failure_removes_stub(self, make_config, toolchain, app_dir, tmp_path):
        """测试主安装器编译失败时删除留在安装器路径上的存根"""
        toolchain.fail_installer_compile = True
        target = _target(make_config(), toolchain)

        with pytest.raises(BuildError, match="line 7"):
            _run(target, {Arch.X64: app_dir})
        assert len(toolchain.calls_of("makensis")) == 2
        dist = tmp_path / "dist"
        assert not (dist / "Test App Setup 1.2.3.exe").exists()
        assert not (dist / "Test App Setup 1.2.3__uninstaller.exe").exists()


class TestBuilder:
    """Builder 同步入口测试"""

    def test_portable_build(self, make_config, toolchain, app_dir, tmp_path):
        """测试构建成功返回产物"""
        result = Builder(runner=toolchain, events=RecordingEventSink()).build(
            make_config({'mode': "portable"}), {Arch.X64: app_dir}
        )
        assert result.success
        assert result.output_paths == [tmp_path / "dist" / "Test App 1.2.3.exe"]
        assert isinstance(result.artifacts[0], ArtifactBuildCompleted)

    def test_missing_app_dir(self, make_config, toolchain, tmp_path):
        """测试应用目录不存在时返回失败结果"""
        result = Builder(runner=toolchain).build(make_config(), {Arch.X64: tmp_path / "missing"})
        assert not result.success
        assert "missing" in result.error
        assert toolchain.calls == []

    def test_compile_failure(self, make_config, toolchain, app_dir):
        """测试编译失败转换为失败结果"""
        toolchain.fail_makensis = True
        progress = []
        result = Builder(runner=toolchain).build(
            make_config({'mode': "portable"}), {Arch.X64: app_dir},
            progress_callback=lambda stage, percent, total, message: progress.append(percent),
        )
        assert not result.success
        assert "line 42" in result.error
        assert progress[:2] == [0, 30]
