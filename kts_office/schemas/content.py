from typing import List, Optional

from pydantic import BaseModel, Field


class TeamMemberInput(BaseModel):
    name: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    bio: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None
    is_visible: bool = True


class TestimonialInput(BaseModel):
    name: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    role: Optional[str] = None
    company: Optional[str] = None
    avatar_url: Optional[str] = None
    rating: Optional[int] = Field(5, ge=1, le=5)
    is_visible: bool = True


class BlogPostInput(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    excerpt: Optional[str] = None
    author_name: str = "Krishna Tech Solutions"
    featured_image: Optional[str] = None
    category_id: Optional[str] = None
    is_published: bool = False
    slug: Optional[str] = None


class ContentRecord(BaseModel):
    """Loose projection returned for any content row."""

    model_config = {"extra": "allow"}

    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ContactMessageInput(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: str = Field(..., min_length=1)
    source: Optional[str] = "contact_form"


class ContactMessage(BaseModel):
    id: str
    name: str
    email: str = ""
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: str
    source: Optional[str] = None
    is_read: bool = False
    created_at: Optional[str] = None


class ContactMessageList(BaseModel):
    total: int
    items: List[ContactMessage]


class UploadResponse(BaseModel):
    url: str
