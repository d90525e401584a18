"""Initial migration — users, catalog, social graph, shelves, reviews and activity feed.

Revision ID: 001
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("role", sa.String(20), server_default="user", nullable=False),
        sa.Column("is_private", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # Books
    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("author", sa.String(255), nullable=False),
        sa.Column("normalized_title", sa.String(500), nullable=False),
        sa.Column("normalized_author", sa.String(255), nullable=False),
        sa.Column("isbn", sa.String(13), nullable=True),
        sa.Column("external_id", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cover_url", sa.String(1000), nullable=True),
        sa.Column("published_year", sa.Integer(), nullable=True),
        sa.Column("genre", sa.String(100), nullable=True),
        sa.Column("page_count", sa.Integer(), nullable=True),
        sa.Column("publisher", sa.String(255), nullable=True),
        sa.Column("language", sa.String(20), nullable=True),
        sa.Column("average_rating", sa.Float(), server_default="0.0"),
        sa.Column("is_verified", sa.Boolean(), server_default=sa.false()),
        sa.Column("source", sa.String(40), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("isbn", name="uq_books_isbn"),
        sa.UniqueConstraint("external_id", name="uq_books_external_id"),
        sa.UniqueConstraint("normalized_title", "normalized_author", name="uq_books_normalized_title_author"),
    )
    op.create_index("ix_books_title", "books", ["title"])
    op.create_index("ix_books_author", "books", ["author"])
    op.create_index("ix_books_genre", "books", ["genre"])

    # Follow edges
    op.create_table(
        "user_follows",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("follower_id", sa.Integer(), nullable=False),
        sa.Column("following_id", sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["follower_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["following_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_user_follows_pair"),
        sa.CheckConstraint("follower_id <> following_id", name="ck_user_follows_not_self"),
    )
    op.create_index("ix_user_follows_follower_id", "user_follows", ["follower_id"])
    op.create_index("ix_user_follows_following_id", "user_follows", ["following_id"])

    # Reading records
    op.create_table(
        "user_books",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("book_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finish_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("personal_rating", sa.Integer(), nullable=True),
        sa.Column("current_page", sa.Integer(), nullable=True),
        sa.Column("is_favorite", sa.Boolean(), server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["book_id"], ["books.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "book_id", name="uq_user_books_user_book"),
    )
    op.create_index("ix_user_books_user_id", "user_books", ["user_id"])
    op.create_index("ix_user_books_book_id", "user_books", ["book_id"])

    # Bookshelves
    op.create_table(
        "bookshelves",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("privacy", sa.String(20), server_default="public", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_bookshelves_user_id", "bookshelves", ["user_id"])

    op.create_table(
        "bookshelf_books",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("bookshelf_id", sa.Integer(), nullable=False),
        sa.Column("book_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["bookshelf_id"], ["bookshelves.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["book_id"], ["books.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("bookshelf_id", "book_id", name="uq_bookshelf_books_shelf_book"),
    )
    op.create_index("ix_bookshelf_books_bookshelf_id", "bookshelf_books", ["bookshelf_id"])
    op.create_index("ix_bookshelf_books_book_id", "bookshelf_books", ["book_id"])

    # Reviews and likes
    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("book_id", sa.Integer(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("contains_spoilers", sa.Boolean(), server_default=sa.false()),
        sa.Column("like_count", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["book_id"], ["books.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "book_id", name="uq_reviews_user_book"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        sa.CheckConstraint("like_count >= 0", name="ck_reviews_like_count_non_negative"),
    )
    op.create_index("ix_reviews_user_id", "reviews", ["user_id"])
    op.create_index("ix_reviews_book_id", "reviews", ["book_id"])

    op.create_table(
        "review_likes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("review_id", sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["review_id"], ["reviews.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "review_id", name="uq_review_likes_user_review"),
    )
    op.create_index("ix_review_likes_user_id", "review_likes", ["user_id"])
    op.create_index("ix_review_likes_review_id", "review_likes", ["review_id"])

    # Activity feed
    op.create_table(
        "activity_feed",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("activity_type", sa.String(50), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("metadata", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_activity_feed_user_created", "activity_feed", ["user_id", "created_at"])
    op.create_index("ix_activity_feed_created", "activity_feed", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_feed")
    op.drop_table("review_likes")
    op.drop_table("reviews")
    op.drop_table("bookshelf_books")
    op.drop_table("bookshelves")
    op.drop_table("user_books")
    op.drop_table("user_follows")
    op.drop_table("books")
    op.drop_table("users")
