"""Feed domain entities.

两者都序列化为 camelCase，与移动端现有字段保持一致。
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from balanced_news.modules.sources.domain.entities import SelectedSource, SourceRole


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ArticleSource(_CamelModel):
    """上游文章所属信源。"""

    id: str
    name: str


class ProviderArticle(_CamelModel):
    """文章提供方返回的一篇文章（已清洗）。"""

    title: str
    url: str
    url_to_image: str | None = None
    published_at: str | None = None
    description: str = ""
    source: ArticleSource
    author: str | None = None
    content: str | None = None


class FeedCard(_CamelModel):
    """Feed 中的一张卡片，构建后不可变。"""

    article_id: str = Field(..., description="文章唯一标识（原文 URL）")
    title: str
    source_id: str
    source_name: str
    image_url: str | None = None
    url: str
    published_at: str | None = None
    role: SourceRole
    description: str = ""
    is_fallback: bool = False

    @classmethod
    def build(
        cls,
        source: SelectedSource,
        article: ProviderArticle,
        *,
        is_fallback: bool = False,
    ) -> "FeedCard":
        return cls(
            article_id=article.url,
            title=article.title,
            source_id=source.id,
            source_name=source.name,
            image_url=article.url_to_image,
            url=article.url,
            published_at=article.published_at,
            role=source.role,
            description=article.description,
            is_fallback=is_fallback,
        )
