"""
脚本片段单元测试

语言集合、消息目录、许可协议、文件关联、预压缩资源以及共享头部组合。
"""

import asyncio
from pathlib import Path

import pytest

from nsiforge.build.fragments.associations import register_associations_fragment, unregister_associations_fragment
from nsiforge.build.fragments.base import FragmentContext
from nsiforge.build.fragments.composer import ScriptComposer
from nsiforge.build.fragments.lang import LangConfigurator, compute_message_translations, create_add_langs_macro
from nsiforge.build.fragments.languages import BUNDLED_LANGUAGES, nsis_language_name, to_lang_with_region
from nsiforge.build.fragments.license import license_fragment
from nsiforge.build.fragments.precompressed import pre_compressed_fragment
from nsiforge.build.orchestrator import DEFAULT_TEMPLATES_DIR
from nsiforge.build.resources import ResourceLocator
from nsiforge.build.tasks import CancellationToken
from nsiforge.config.schema import Arch


def _context(config, tmp_path: Path, archs=None) -> FragmentContext:
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir(exist_ok=True)
    return FragmentContext(
        config=config,
        locator=ResourceLocator(config),
        lang=LangConfigurator(config.installer),
        templates_dir=DEFAULT_TEMPLATES_DIR,
        temp_dir=temp_dir,
        archs=archs or {},
    )


def _resources(tmp_path: Path) -> Path:
    resources = tmp_path / "build"
    resources.mkdir(exist_ok=True)
    return resources


class TestLanguages:
    """语言表测试"""

    @pytest.mark.parametrize("lang, expected", [
        ("en", "en_US"),
        ("de", "de_DE"),
        ("zh-CN", "zh_CN"),
        ("pt_BR", "pt_BR"),
    ])
    def test_lang_with_region(self, lang, expected):
        """测试补全地区"""
        assert to_lang_with_region(lang) == expected

    def test_nsis_language_name(self):
        """测试 MUI 语言名"""
        assert nsis_language_name("en_US") == "English"
        assert nsis_language_name("zh_CN") == "SimpChinese"
        with pytest.raises(ValueError):
            nsis_language_name("xx_XX")


class TestLangConfigurator:
    """LangConfigurator 测试"""

    def test_multi_language_by_default(self, make_config):
        """测试默认包含全部内置语言"""
        lang = LangConfigurator(make_config().installer)
        assert lang.is_multi_lang
        assert lang.langs == list(BUNDLED_LANGUAGES)

    def test_explicit_languages(self, make_config):
        """测试显式语言列表去重"""
        config = make_config({'mode': "one-click", 'installer_languages': ["en", "de_DE", "en_US"]})
        assert LangConfigurator(config.installer).langs == ["en_US", "de_DE"]

    def test_single_language(self, make_config):
        """测试关闭多语言时只保留第一种"""
        config = make_config({'mode': "one-click", 'multi_language_installer': False, 'installer_languages': ["de"]})
        lang = LangConfigurator(config.installer)
        assert not lang.is_multi_lang
        assert lang.langs == ["de_DE"]

    def test_ansi_installer_is_single_language(self, make_config):
        """测试非 Unicode 安装器只包含一种语言"""
        lang = LangConfigurator(make_config({'mode': "one-click", 'unicode': False}).installer)
        assert lang.langs == ["en_US"]

    def test_add_langs_macro(self, make_config):
        """测试 addLangs 宏"""
        config = make_config({'mode': "one-click", 'installer_languages': ["en", "ja"]})
        script = create_add_langs_macro(LangConfigurator(config.installer)).build()
        assert '!insertmacro MUI_LANGUAGE "English"' in script
        assert '!insertmacro MUI_LANGUAGE "Japanese"' in script


class TestMessageTranslations:
    """消息目录渲染测试"""

    def test_fallback_to_english(self, make_config):
        """测试缺失的语言回退到英文"""
        config = make_config({'mode': "one-click", 'installer_languages': ["en", "de"]})
        lines = compute_message_translations({'hello': {'en': "Hello\nWorld"}}, LangConfigurator(config.installer))

        assert 'LangString hello 1033 "Hello$\\r$\\nWorld"' in lines
        assert 'LangString hello 1031 "Hello$\\r$\\nWorld"' in lines

    def test_languages_outside_set_are_skipped(self, make_config):
        """测试不在语言集合内的翻译被忽略"""
        config = make_config({'mode': "one-click", 'installer_languages': ["en"]})
        lines = compute_message_translations({'hello': {'en': "Hi", 'de': "Hallo"}}, LangConfigurator(config.installer))
        assert lines == ['LangString hello 1033 "Hi"']

    def test_missing_english_fallback(self, make_config):
        """测试缺少英文回退时报错"""
        config = make_config({'mode': "one-click", 'installer_languages': ["en", "de"]})
        with pytest.raises(ValueError, match="hello"):
            compute_message_translations({'hello': {'de': "Hallo"}}, LangConfigurator(config.installer))

    def test_bundled_catalogs_render(self, make_config, tmp_path):
        """测试内置消息目录可以渲染为 include 文件"""
        ctx = _context(make_config({'mode': "assisted"}), tmp_path)
        header = asyncio.run(ScriptComposer(ctx, CancellationToken()).shared_header())

        assert f'!include "{ctx.temp_dir / "messages.nsh"}"' in header
        assert f'!include "{ctx.temp_dir / "assistedMessages.nsh"}"' in header
        rendered = (ctx.temp_dir / "messages.nsh").read_text(encoding='utf-8')
        assert "LangString appRunning 1033" in rendered


class TestLicenseFragment:
    """许可协议片段测试"""

    def test_no_license(self, make_config, tmp_path):
        """测试没有许可文件时不生成页面"""
        fragment = asyncio.run(license_fragment(_context(make_config({'mode': "assisted"}), tmp_path)))
        assert fragment.is_empty()

    def test_conventional_license_file(self, make_config, tmp_path):
        """测试约定名称的许可文件"""
        license_file = _resources(tmp_path) / "license.txt"
        license_file.write_text("MIT", encoding='utf-8')
        fragment = asyncio.run(license_fragment(_context(make_config({'mode': "assisted"}), tmp_path)))

        assert fragment.has_macro("licensePage")
        assert f'!insertmacro MUI_PAGE_LICENSE "{license_file}"' in fragment.build()

    def test_html_license(self, make_config, tmp_path):
        """测试 HTML 许可文件使用 EmbedHTML"""
        (tmp_path / "terms.html").write_text("<p>terms</p>", encoding='utf-8')
        config = make_config({'mode': "assisted", 'license': "terms.html"})
        fragment = asyncio.run(license_fragment(_context(config, tmp_path)))

        assert fragment.has_macro("addLicenseFiles")
        assert "EmbedHTML::Load" in fragment.build()

    def test_language_licenses(self, make_config, tmp_path):
        """测试按语言命名的许可文件，缺失的语言回退到第一个文件"""
        resources = _resources(tmp_path)
        (resources / "license_de.txt").write_text("de", encoding='utf-8')
        (resources / "license_en.txt").write_text("en", encoding='utf-8')
        config = make_config({'mode': "assisted", 'installer_languages': ["en", "de", "ja"]})
        script = asyncio.run(license_fragment(_context(config, tmp_path))).build()

        assert f'LicenseLangString MUILicense 1031 "{resources / "license_de.txt"}"' in script
        assert f'LicenseLangString MUILicense 1033 "{resources / "license_en.txt"}"' in script
        assert f'LicenseLangString MUILicense 1041 "{resources / "license_de.txt"}"' in script


class TestAssociationsFragment:
    """文件关联片段测试"""

    def test_register_and_unregister(self, make_config, tmp_path):
        """测试注册与注销宏"""
        resources = _resources(tmp_path)
        (resources / "doc.ico").write_bytes(b"ico")
        config = make_config(file_associations=[
            {'ext': ["doc", ".docx"], 'name': "Document", 'icon': "doc.ico"},
            {'ext': "txt"},
        ])
        ctx = _context(config, tmp_path)

        register = asyncio.run(register_associations_fragment(ctx)).build()
        assert register.count('File "/oname=$INSTDIR\\resources\\doc.ico"') == 1
        assert '!insertmacro APP_ASSOCIATE "doc" "Document"' in register
        assert '!insertmacro APP_ASSOCIATE "docx" "Document"' in register
        assert '!insertmacro APP_ASSOCIATE "txt" "txt" "" "$appExe,0"' in register
        assert "FileAssociation.nsh" in register

        unregister = asyncio.run(unregister_associations_fragment(ctx)).build()
        assert '!insertmacro APP_UNASSOCIATE "docx" "Document"' in unregister
        assert '!insertmacro APP_UNASSOCIATE "txt" "txt"' in unregister

    def test_no_associations(self, make_config, tmp_path):
        """测试未配置文件关联"""
        assert asyncio.run(register_associations_fragment(_context(make_config(), tmp_path))).is_empty()


class TestPreCompressedFragment:
    """预压缩资源片段测试"""

    def test_assets_embedded_per_arch(self, app_dir):
        """测试 resources 下的视频按架构嵌入，node_modules 被跳过"""
        (app_dir / "resources" / "intro.mp4").write_bytes(b"video")
        (app_dir / "resources" / "node_modules").mkdir()
        (app_dir / "resources" / "node_modules" / "skip.mp4").write_bytes(b"video")

        fragment = asyncio.run(pre_compressed_fragment(Arch.ARM64, app_dir, [".mp4"]))
        script = fragment.build()

        assert fragment.has_macro("customFiles_arm64")
        assert '$INSTDIR\\resources\\intro.mp4' in script
        assert "skip.mp4" not in script

    def test_no_assets(self, app_dir):
        """测试没有预压缩资源"""
        assert asyncio.run(pre_compressed_fragment(Arch.X64, app_dir, [".mp4"])).is_empty()


class TestScriptComposer:
    """ScriptComposer 测试"""

    def test_shared_header(self, make_config, tmp_path):
        """测试共享头部包含 include 目录、标志与语言宏"""
        ctx = _context(make_config(), tmp_path)
        header = asyncio.run(ScriptComposer(ctx, CancellationToken()).shared_header())

        assert f'!addincludedir "{DEFAULT_TEMPLATES_DIR / "include"}"' in header
        assert '!include "StdUtils.nsh"' in header
        assert "!define isUpdated" in header
        assert "!macro addLangs" in header
        assert "assistedMessages" not in header

    def test_custom_include(self, make_config, tmp_path):
        """测试约定名称的 installer.nsh"""
        include = _resources(tmp_path) / "installer.nsh"
        include.write_text("!macro customInstall\n!macroend\n", encoding='utf-8')
        header = asyncio.run(ScriptComposer(_context(make_config(), tmp_path), CancellationToken()).shared_header())
        assert f'!include "{include}"' in header

    def test_final_script_appends_template(self, make_config, tmp_path, app_dir):
        """测试最终脚本为片段加模板正文"""
        (app_dir / "resources" / "intro.mp4").write_bytes(b"video")
        ctx = _context(make_config(), tmp_path, archs={Arch.X64: app_dir})
        composer = ScriptComposer(ctx, CancellationToken())

        script = asyncio.run(composer.final_script("; template body\n", is_installer=True))
        assert script.endswith("; template body\n")
        assert "!macro customFiles_x64" in script
