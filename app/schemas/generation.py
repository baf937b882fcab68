from pydantic import BaseModel, ConfigDict, Field


class ImageGenerateIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    prompt: str = Field(..., min_length=1)
    aspect_ratio: str = Field("1:1", alias="aspectRatio")
    reference_image_url: str | None = Field(None, alias="referenceImageUrl")


class VideoGenerateIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    prompt: str = Field(..., min_length=1)
    image_url: str | None = Field(None, alias="imageUrl")
    aspect_ratio: str = Field("9:16", alias="aspectRatio")
    model: str | None = None
    seeds: int | None = None
    enable_fallback: bool = Field(False, alias="enableFallback")
    enable_translation: bool = Field(True, alias="enableTranslation")
    watermark: str | None = None
    callback_url: str | None = Field(None, alias="callBackUrl")
