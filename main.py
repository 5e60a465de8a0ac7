"""
Lead Export 服务启动脚本

使用 uvicorn 启动 FastAPI 应用。
"""

import uvicorn

from leadexport.config import get_settings


def main() -> None:
    """
    启动应用

    监听地址、端口与日志级别从配置读取。
    """
    settings = get_settings()

    uvicorn.run(
        "leadexport.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
