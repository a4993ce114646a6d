from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

class Heading(BaseModel):
    id: str
    text: str
    level: int = Field(description="2 or 3")

class PostSummary(BaseModel):
    """One card in the feed or in "related"."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    slug: str
    title: str
    date: str
    time_ago: str = Field(alias="timeAgo")                  # compact, e.g. "3h ago"
    excerpt: str = Field(description="Excerpt without HTML tags")
    author: Optional[str] = None
    category: Optional[str] = None                          # first category
    image_url: Optional[str] = Field(None, alias="imageUrl")  # featured media

class FeedPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int
    per_page: int = Field(alias="perPage")
    total: int
    total_pages: int = Field(alias="totalPages")
    posts: List[PostSummary] = Field(default_factory=list)   # empty list is the empty state

class Article(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    slug: str
    title: str
    date: str
    time_ago: str = Field(alias="timeAgo")
    description: str = Field(description="Excerpt without HTML tags")
    content: str = Field(description="Rendered body with anchor ids on h2/h3")
    headings: List[Heading] = Field(default_factory=list)
    author: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")
    related: List[PostSummary] = Field(default_factory=list)
