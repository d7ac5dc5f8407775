from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 不在这里写死 env_file：测试直接实例化 Settings()，不应隐式读取仓库里的 .env。
    # 运行时统一走 get_settings()。
    model_config = SettingsConfigDict(extra="ignore")

    app_name: str = "picturebook-backend"
    environment: str = Field(default="dev", description="dev|staging|prod")
    log_level: str = Field(default="INFO", description="根日志级别")

    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # ============================================
    # 持久化（键值存储后端）
    # ============================================
    store_backend: Literal["sql", "redis", "memory"] = Field(
        default="sql",
        description="项目/阶段产出/模板等键值存储后端：sql | redis | memory",
    )
    database_url: str = Field(default="sqlite+aiosqlite:///./picturebook.db")
    db_echo: bool = False
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = "picturebook"

    # ============================================
    # 结构化内容服务（Anthropic Messages API）
    # ============================================
    anthropic_api_key: str | None = None
    anthropic_auth_token: str | None = Field(
        default=None,
        description="代理/中转站使用的 Bearer Token",
    )
    anthropic_base_url: str | None = Field(
        default=None,
        description="Anthropic 代理地址，例如 https://your-proxy.example.com",
    )
    anthropic_model: str = Field(default="claude-sonnet-4-5-20250929")
    story_max_tokens: int = Field(default=4096, description="阶段 0/1/2/4 的最大输出 token")
    panel_briefs_max_tokens: int = Field(default=8192, description="阶段 5 的最大输出 token")

    # ============================================
    # 图像生成服务（Replicate predictions API）
    # ============================================
    replicate_api_token: str | None = None
    replicate_base_url: str = Field(default="https://api.replicate.com/v1")
    image_model: str = Field(
        default="google/nano-banana-pro",
        description="Replicate 模型（owner/name）",
    )
    image_resolution: str | None = Field(
        default="2K",
        description="仅 nano-banana-pro 支持；为空则不传",
    )
    image_safety_filter_level: str | None = "block_only_high"
    poll_interval_s: float = 2.0
    max_polls: int = 150

    request_timeout_s: float = 120.0
    batch_delay_s: float = Field(default=1.0, description="批量出图时两次请求之间的固定间隔（秒）")

    # ============================================
    # 故事模板
    # ============================================
    legacy_story_id: str = "adventure-story"
    outline_image_url: str | None = Field(
        default=None,
        description="草图阶段使用的白色轮廓占位图（公网可访问 URL）",
    )
    public_base_url: str | None = Field(
        default=None,
        description="对外可访问的后端地址（用于把 /static 路径转换为完整 URL）",
    )

    def replicate_headers(self) -> dict[str, str]:
        """Replicate 请求头"""
        headers: dict[str, str] = {"User-Agent": self.app_name}
        if self.replicate_api_token:
            headers["Authorization"] = f"Bearer {self.replicate_api_token}"
        return headers

    def build_public_url(self, path: str | None) -> str | None:
        """将本地路径（如 /static/xxx）转换为对外可访问的完整 URL"""
        if not path:
            return path
        if path.startswith(("http://", "https://", "data:")):
            return path
        if not self.public_base_url:
            return path
        normalized = path if path.startswith("/") else f"/{path}"
        return f"{self.public_base_url.rstrip('/')}{normalized}"


@lru_cache
def get_settings() -> Settings:
    return Settings(_env_file=".env", _env_file_encoding="utf-8")
