"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from smellhunter.chains import ChainWalker
from smellhunter.names import NameResolver
from smellhunter.tree import parse


class ParsedFile:
    """A parsed snippet with its resolver and chain walker."""

    def __init__(self, source: str, path: str = "snippet.php"):
        self.tree = parse(source, path)
        self.names = NameResolver(self.tree)
        self.chains = ChainWalker(self.tree, self.names)

    def first(self, kind, text_fragment: str = ""):
        for node in self.tree.of_kind(kind):
            if text_fragment in node.text:
                return node
        raise AssertionError(f"no {kind} node containing {text_fragment!r}")


@pytest.fixture
def php():
    """Parse a PHP snippet: ``php("<?php ...")``."""
    return ParsedFile


@pytest.fixture
def project(tmp_path):
    """Write files into a throwaway Laravel-shaped project.

    ``project({"app/Models/User.php": "<?php ..."})`` returns the root path.
    """

    def make(files):
        for relative, content in files.items():
            path = Path(tmp_path, relative)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return tmp_path

    return make


USER_MODEL = """<?php

namespace App\\Models;

use Illuminate\\Database\\Eloquent\\Model;

class User extends Model
{
    public function posts()
    {
        return $this->hasMany(Post::class);
    }
}
"""

POST_MODEL = """<?php

namespace App\\Models;

use Illuminate\\Database\\Eloquent\\Model;

class Post extends Model
{
    protected $table = 'blog_posts';
}
"""


@pytest.fixture
def models():
    return {"app/Models/User.php": USER_MODEL, "app/Models/Post.php": POST_MODEL}
