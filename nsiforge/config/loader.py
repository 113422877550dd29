"""
配置加载器

负责从 YAML 文件加载配置并进行验证。
配置中的相对路径以配置文件所在目录为基准解析。
"""

import copy
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .schema import BuildConfig


class ConfigError(Exception):
    """配置错误基类"""
    pass


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def __init__(self, message: str, errors: List[Dict[str, Any]]):
        super().__init__(message)
        self.errors = errors

    def format_errors(self) -> str:
        """格式化错误信息为人类可读的格式"""
        formatted = []
        for error in self.errors:
            loc = " -> ".join(str(item) for item in error.get('loc', []))
            msg = error.get('msg', '未知错误')
            input_val = error.get('input', '')

            if loc:
                formatted.append(f"字段 '{loc}': {msg}")
                if input_val and not isinstance(input_val, dict):
                    formatted.append(f"  输入值: {input_val}")
            else:
                formatted.append(f"根级别: {msg}")

        return "\n".join(formatted)


class ConfigLoader:
    """配置加载器"""

    # 需要按配置文件目录解析的路径字段
    PATH_FIELDS = [
        ('project_dir',),
        ('output_dir',),
        ('build_resources_dir',),
        ('tools', 'makensis'),
        ('tools', 'nsis_dir'),
        ('tools', 'nsis_resources_dir'),
        ('tools', 'templates_dir'),
    ]

    def __init__(self):
        self.yaml = YAML()
        self.yaml.preserve_quotes = True
        self.yaml.width = 4096  # 避免长行自动换行

    def load_from_file(self, config_path: Union[str, Path]) -> BuildConfig:
        """从文件加载配置

        Args:
            config_path: 配置文件路径

        Returns:
            BuildConfig: 验证后的配置实例

        Raises:
            ConfigError: 配置加载或验证错误
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigError(f"配置文件不存在: {config_path}")

        if not config_path.is_file():
            raise ConfigError(f"配置路径不是文件: {config_path}")

        if config_path.suffix.lower() not in ['.yaml', '.yml']:
            raise ConfigError(f"配置文件必须是 .yaml 或 .yml 格式: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                raw_data = self.yaml.load(f)
        except YAMLError as e:
            raise ConfigError(f"YAML 解析错误: {e}") from e
        except OSError as e:
            raise ConfigError(f"文件读取错误: {e}") from e

        if raw_data is None:
            raise ConfigError("配置文件为空")

        if not isinstance(raw_data, dict):
            raise ConfigError("配置文件根级别必须是对象/字典格式")

        data = self._to_plain(raw_data)
        self._resolve_relative_paths(data, config_path.parent.resolve())
        return self._validate(data)

    def load_from_dict(self, data: Dict[str, Any], base_path: Optional[Path] = None) -> BuildConfig:
        """从字典加载配置

        Args:
            data: 配置数据字典
            base_path: 相对路径的基准路径

        Returns:
            BuildConfig: 验证后的配置实例

        Raises:
            ConfigValidationError: 配置验证错误
        """
        if base_path:
            data = copy.deepcopy(data)
            self._resolve_relative_paths(data, base_path)
        return self._validate(data)

    def save_to_file(self, config: BuildConfig, output_path: Union[str, Path]) -> None:
        """保存配置到文件

        Args:
            config: 配置实例
            output_path: 输出文件路径

        Raises:
            ConfigError: 保存错误
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                self.yaml.dump(config.to_dict(), f)
        except OSError as e:
            raise ConfigError(f"保存配置文件失败: {e}") from e

    def validate_file(self, config_path: Union[str, Path]) -> List[Dict[str, Any]]:
        """验证配置文件并返回错误列表

        Returns:
            List[Dict]: 错误列表，空列表表示验证通过
        """
        try:
            self.load_from_file(config_path)
            return []
        except ConfigValidationError as e:
            return e.errors
        except ConfigError as e:
            return [{
                'loc': [],
                'msg': str(e),
                'type': 'config_error'
            }]

    def _validate(self, data: Dict[str, Any]) -> BuildConfig:
        try:
            return BuildConfig.from_dict(data)
        except ValidationError as e:
            raise ConfigValidationError("配置验证失败", list(e.errors()))

    def _to_plain(self, data: Any) -> Any:
        """将 ruamel 的 CommentedMap/CommentedSeq 转为普通容器"""
        if isinstance(data, dict):
            return {str(k): self._to_plain(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._to_plain(v) for v in data]
        return data

    def _resolve_relative_paths(self, data: Dict[str, Any], base_path: Path) -> None:
        """解析配置中的相对路径

        Args:
            data: 配置数据字典
            base_path: 基准路径
        """
        for field_path in self.PATH_FIELDS:
            self._resolve_field_path(data, field_path, base_path)

        # 未显式指定 project_dir 时以配置文件目录为项目目录
        if 'project_dir' not in data:
            data['project_dir'] = str(base_path)

    def _resolve_field_path(self, data: Dict[str, Any], field_path: tuple, base_path: Path) -> None:
        """解析单个字段的相对路径"""
        current = data

        for key in field_path[:-1]:
            if key not in current or not isinstance(current[key], dict):
                return
            current = current[key]

        final_key = field_path[-1]
        if final_key in current:
            path_value = current[final_key]
            if isinstance(path_value, str) and path_value:
                path_obj = Path(path_value)
                if not path_obj.is_absolute():
                    current[final_key] = str((base_path / path_value).resolve())


# 全局加载器实例
config_loader = ConfigLoader()


def load_config(config_path: Union[str, Path]) -> BuildConfig:
    """便捷函数：加载配置文件"""
    return config_loader.load_from_file(config_path)


def validate_config(config_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """便捷函数：验证配置文件"""
    return config_loader.validate_file(config_path)


def save_config(config: BuildConfig, output_path: Union[str, Path]) -> None:
    """便捷函数：保存配置文件"""
    config_loader.save_to_file(config, output_path)
