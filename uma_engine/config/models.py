"""Pydantic models for configuration validation."""

from pathlib import Path
from pydantic import BaseModel, Field, field_validator, ConfigDict


class PathsConfig(BaseModel):
    """File path configuration."""
    
    corpus: Path = Path("data/corpus")
    portraits: Path = Path("data/portraits")
    
    @field_validator('corpus', 'portraits')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)


class CardConfig(BaseModel):
    """Uma card (PNG) export settings."""
    
    keyword: str = Field(default="UmaCard", min_length=1, max_length=79)
    version: int = Field(default=1, ge=1)
    default_outfit: str = Field(default="100101", pattern=r"^\d{6}$")
    
    @field_validator('keyword')
    @classmethod
    def validate_keyword(cls, v: str) -> str:
        """tEXt keywords are Latin-1 without NUL."""
        if "\x00" in v:
            raise ValueError('keyword must not contain NUL')
        try:
            v.encode('latin-1')
        except UnicodeEncodeError:
            raise ValueError('keyword must be Latin-1 text')
        return v


class VisionConfig(BaseModel):
    """Screenshot extraction (Gemini) configuration."""
    
    enabled: bool = True
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-flash-latest"
    timeout_seconds: int = Field(default=60, gt=0)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    top_k: int = Field(default=1, gt=0)
    top_p: float = Field(default=0.8, gt=0.0, le=1.0)
    max_output_tokens: int = Field(default=2048, gt=0)
    resize_target: int = Field(default=2048, gt=0, description="Longest image edge sent to the model")
    api_key_env: str = Field(default="GEMINI_API_KEY", description="Environment variable holding the API key")
    
    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure URL is properly formatted."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base_url must start with http:// or https://')
        return v.rstrip('/')


class SystemConfig(BaseModel):
    """Top-level system configuration."""
    
    model_config = ConfigDict(extra='ignore')
    
    paths: PathsConfig = Field(default_factory=PathsConfig)
    card: CardConfig = Field(default_factory=CardConfig)
    vision: VisionConfig = Field(default_factory=VisionConfig)
    debug: bool = False
    api_host: str = "localhost"
    api_port: int = Field(default=8080, gt=0, le=65535)
