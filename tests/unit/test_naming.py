"""
产物命名单元测试
"""

import pytest

from nsiforge.build.naming import (
    UnknownMacroError,
    expand_macros,
    github_installer_name,
    installer_file_name,
    safe_artifact_name_if_needed,
)
from nsiforge.config.schema import Arch


class TestExpandMacros:
    """文件名模板测试"""

    def test_macros(self, make_config):
        """测试各个宏"""
        app = make_config().app
        result = expand_macros("${productName}-${name}-${version}-${os}-${arch}.${ext}", app, Arch.ARM64, "exe")
        assert result == "Test App-test-app-1.2.3-win-arm64.exe"

    @pytest.mark.parametrize("pattern, expected", [
        ("${productName}-${arch}.exe", "Test App.exe"),
        ("${productName}_${arch}.exe", "Test App.exe"),
        ("${productName} ${arch}.exe", "Test App.exe"),
        ("${arch}-${productName}.exe", "-Test App.exe"),
    ])
    def test_arch_removed_without_single_arch(self, make_config, pattern, expected):
        """测试没有单一架构时去掉 ${arch} 及其前面的分隔符"""
        assert expand_macros(pattern, make_config().app) == expected

    def test_unknown_macro(self, make_config):
        """测试不支持的宏"""
        with pytest.raises(UnknownMacroError, match="channel"):
            expand_macros("${productName}-${channel}.exe", make_config().app)


class TestInstallerFileName:
    """安装器文件名测试"""

    def test_default_names(self, make_config):
        """测试各模式的默认文件名"""
        assert installer_file_name(make_config(), None) == "Test App Setup 1.2.3.exe"
        assert installer_file_name(make_config({'mode': "portable"}), None) == "Test App 1.2.3.exe"
        web = make_config({'mode': "web", 'app_package_url': "https://example.com"})
        assert installer_file_name(web, None) == "Test App Web Setup 1.2.3.exe"

    def test_per_arch_suffix(self, make_config):
        """测试非通用模式下非默认架构加后缀"""
        config = make_config({'mode': "one-click", 'build_universal_installer': False}, archs=["x64", "ia32"])
        assert installer_file_name(config, Arch.X64) == "Test App Setup 1.2.3.exe"
        assert installer_file_name(config, Arch.IA32) == "Test App Setup 1.2.3-ia32.exe"

    def test_custom_pattern(self, make_config):
        """测试自定义模板"""
        config = make_config({'mode': "one-click", 'artifact_name': "${name}-${version}-${arch}.${ext}"})
        assert installer_file_name(config, Arch.X64) == "test-app-1.2.3-x64.exe"
        assert installer_file_name(config, None) == "test-app-1.2.3.exe"


class TestSafeArtifactName:
    """安全产物名测试"""

    def test_github_names(self, make_config):
        """测试各模式的安全名称"""
        assert github_installer_name(make_config(), None) == "test-app-setup-1.2.3.exe"
        assert github_installer_name(make_config({'mode': "portable"}), None) == "test-app-1.2.3.exe"
        web = make_config({'mode': "web", 'app_package_url': "https://example.com"})
        assert github_installer_name(web, None) == "test-app-websetup-1.2.3.exe"

    def test_capitalized_name(self, make_config):
        """测试名称含大写字母时使用 Setup"""
        config = make_config(app={'name': "TestApp", 'version': "1.0.0"})
        assert github_installer_name(config, None) == "TestApp-Setup-1.0.0.exe"

    def test_only_when_needed(self, make_config):
        """测试文件名本身安全时不需要替代名"""
        config = make_config()
        assert safe_artifact_name_if_needed("test-app-1.2.3.exe", config, None) is None
        assert safe_artifact_name_if_needed("Test App Setup 1.2.3.exe", config, None) == "test-app-setup-1.2.3.exe"
