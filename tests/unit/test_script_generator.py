"""
脚本生成器单元测试
"""

import pytest

from nsiforge.build.script_generator import ScriptGenerator, ScriptGeneratorError, flag_variable_name


class TestFlagVariableName:
    """命令行标志变量名测试"""

    @pytest.mark.parametrize("flag, expected", [
        ("allusers", "isForAllUsers"),
        ("currentuser", "isForCurrentUser"),
        ("updated", "isUpdated"),
        ("force-run", "isForceRun"),
        ("keep-shortcuts", "isKeepShortcuts"),
        ("no-desktop-shortcut", "isNoDesktopShortcut"),
    ])
    def test_names(self, flag, expected):
        """测试标志名到变量名的转换"""
        assert flag_variable_name(flag) == expected


class TestScriptGenerator:
    """ScriptGenerator 测试"""

    def test_declarations_keep_order(self):
        """测试声明按调用顺序输出"""
        generator = ScriptGenerator()
        generator.add_include_dir("C:\\nsis\\include")
        generator.add_plugin_dir("x86-unicode", "C:\\nsis\\plugins")
        generator.include("StdUtils.nsh")
        generator.insert_macro("customHeader", "")

        lines = generator.lines()
        assert lines[0] == '!addincludedir "C:\\nsis\\include"'
        assert lines[1] == '!addplugindir /x86-unicode "C:\\nsis\\plugins"'
        assert lines[2] == '!include "StdUtils.nsh"'
        assert lines[3].startswith("!insertmacro customHeader")

    def test_file_directive(self):
        """测试 File 指令"""
        generator = ScriptGenerator()
        generator.file(None, "a.mp4")
        generator.file("$INSTDIR\\b.mp4", "b.mp4")
        assert generator.lines() == ['File "a.mp4"', 'File "/oname=$INSTDIR\\b.mp4" "b.mp4"']

    def test_flags_emit_parameter_test(self):
        """测试标志声明生成 StdUtils 参数检测"""
        script = ScriptGenerator().flags(["updated"]).build()
        assert "!macro _isUpdated _a _b _t _f" in script
        assert '${StdUtils.TestParameter} $R9 "updated"' in script
        assert "!define isUpdated" in script

    def test_duplicate_flag_is_ignored(self):
        """测试同名标志重复声明只输出一次"""
        generator = ScriptGenerator().flags(["updated", "updated"])
        generator.flags(["updated"])
        assert generator.build().count("!macro _isUpdated") == 1

    def test_macros_after_declarations(self):
        """测试宏在声明之后输出"""
        generator = ScriptGenerator()
        generator.macro("customInstall", ["DetailPrint \"hi\""])
        generator.include("late.nsh")

        lines = generator.lines()
        assert lines[0] == '!include "late.nsh"'
        assert lines[1] == "!macro customInstall"
        assert lines[-1].startswith("!macroend")

    def test_macro_body_from_generator(self):
        """测试用另一个生成器作为宏体"""
        body = ScriptGenerator().file(None, "x.bin")
        generator = ScriptGenerator().macro("customFiles_x64", body)
        assert generator.has_macro("customFiles_x64")
        assert '  File "x.bin"' in generator.lines()

    def test_identical_macro_redefinition_is_ignored(self):
        """测试内容相同的宏重复定义"""
        generator = ScriptGenerator()
        generator.macro("licensePage", ["a"])
        generator.macro("licensePage", ["a"])
        assert generator.macro_names == ["licensePage"]

    def test_conflicting_macro_redefinition_raises(self):
        """测试内容不同的宏重复定义"""
        generator = ScriptGenerator().macro("licensePage", ["a"])
        with pytest.raises(ScriptGeneratorError, match="licensePage"):
            generator.macro("licensePage", ["b"])

    def test_merge(self):
        """测试合并片段"""
        first = ScriptGenerator().include("a.nsh").flags(["updated"])
        second = ScriptGenerator().include("b.nsh").flags(["updated", "allusers"]).macro("m", ["x"])

        first.merge(second)
        script = first.build()
        assert script.index('!include "a.nsh"') < script.index('!include "b.nsh"')
        assert script.count("!macro _isUpdated") == 1
        assert "!macro _isForAllUsers" in script
        assert first.has_macro("m")

    def test_merge_conflicting_macro_raises(self):
        """测试合并时宏冲突"""
        first = ScriptGenerator().macro("m", ["x"])
        with pytest.raises(ScriptGeneratorError):
            first.merge(ScriptGenerator().macro("m", ["y"]))

    def test_build_is_pure(self):
        """测试多次 build 结果相同"""
        generator = ScriptGenerator().include("a.nsh").macro("m", ["x"]).flags(["updated"])
        assert generator.build() == generator.build()
        assert not generator.is_empty()
        assert ScriptGenerator().is_empty()
