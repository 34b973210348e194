"""项目内使用的自定义异常定义。"""


class TranscoderError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(TranscoderError):
    """配置不合法时抛出。"""


class DirectoryAccessError(TranscoderError):
    """无法读取源目录或写入输出目录，整个批次无法继续。"""


class ImageDecodeError(TranscoderError):
    """源图片无法读取或已损坏。"""


class ImageEncodeError(TranscoderError):
    """缩放或编码 JPEG 失败。"""
