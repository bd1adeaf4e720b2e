"""
Models for the documents of a small social network: users, their posts, and comments on posts.

The engine itself doesn't care about the shape of documents: these models validate them
on the way in, and give them types on the way out.

```python
post = Post.from_text(user_id, 'Loving #mongodb and #bigdata')
post.hashtags  #-> ['#mongodb', '#bigdata']
posts.insert_one(post.to_document())
```
"""

import re
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

#: A hashtag: '#' followed by word characters
HASHTAG_RE = re.compile(r'#\w+')


def extract_hashtags(text: str) -> List[str]:
    """ Find the hashtags in a text: unique, in the order of appearance """
    return list(dict.fromkeys(HASHTAG_RE.findall(text)))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SocialModel(BaseModel):
    """ Base for all documents: they have an `_id`, which is `id` in Python """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[Any] = Field(None, alias='_id')

    def to_document(self) -> dict:
        """ Convert to a document for the store

            Fields left at a `None` default are left out: an omitted field stays absent.
            A `None` that was given explicitly is kept: null is a value.
            A `None` id is always left out, so that `_id` gets generated.
        """
        doc = self.model_dump(by_alias=True)
        for name, field in type(self).model_fields.items():
            key = field.alias or name
            if doc.get(key, 0) is None and (name == 'id' or name not in self.model_fields_set):
                del doc[key]
        return doc

    @classmethod
    def from_document(cls, doc: dict):
        return cls.model_validate(doc)


class User(SocialModel):
    username: str = Field(..., min_length=1, description='Unique user name')
    name: str = Field(..., description='Full name')
    email: str = Field(..., description='Email address')
    created_at: datetime = Field(default_factory=utcnow)
    bio: str = Field('', description='Profile text')


class PostMetrics(BaseModel):
    """ Engagement counters. Only ever changed with $inc """
    likes: int = Field(0, ge=0)
    comments: int = Field(0, ge=0)


class Post(SocialModel):
    user_id: Any = Field(..., description='The author: User._id')
    text: str
    hashtags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    # Legacy posts have no metrics at all
    metrics: Optional[PostMetrics] = None

    @classmethod
    def from_text(cls, user_id, text: str, **fields) -> 'Post':
        """ Make a post, with the hashtags taken from the text, and zero metrics """
        fields.setdefault('hashtags', extract_hashtags(text))
        fields.setdefault('metrics', PostMetrics())
        return cls(user_id=user_id, text=text, **fields)


class Comment(SocialModel):
    """ A comment on a post. May have any other fields """

    model_config = ConfigDict(populate_by_name=True, extra='allow')

    post_id: Any = Field(..., description='The post: Post._id')
