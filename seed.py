from datetime import timedelta

from smap.auth import get_password_hash
from smap.clock import utcnow
from smap.database import SessionLocal, engine, Base
from smap.models import MediaType, Platform, PlatformConnection, PostStatus, ScheduledPost, User

DEMO_EMAIL = "demo@smap.local"

# Create tables
Base.metadata.create_all(bind=engine)

db = SessionLocal()

# Clear existing demo data
existing = db.query(User).filter(User.email == DEMO_EMAIL).first()
if existing:
    db.delete(existing)
    db.commit()

now = utcnow()

user = User(
    email=DEMO_EMAIL,
    hashed_password=get_password_hash("demo-password"),
    display_name="Demo Creator",
    is_active=True,
)
db.add(user)
db.flush()

# Connected Facebook page (tokens are placeholders; publishing will fail until reconnected)
facebook = PlatformConnection(
    user_id=user.id,
    platform=Platform.FACEBOOK.value,
    is_connected=True,
    access_token="demo-user-token",
    page_access_token="demo-page-token",
    page_id="100000000000001",
    account_id="100000000000001",
    account_name="Demo Coffee House",
    category="Cafe",
    followers_count=1280,
    engagement_count=64,
    connected_at=now,
)

# Sample scheduled posts
posts = [
    ScheduledPost(
        user_id=user.id,
        platform=Platform.FACEBOOK.value,
        page_id=facebook.page_id,
        page_name=facebook.account_name,
        message="<p>New autumn menu is here!</p><ul><li>Pumpkin latte</li><li>Apple crumble</li></ul>",
        media_type=MediaType.NONE.value,
        scheduled_time=now + timedelta(hours=2),
        status=PostStatus.SCHEDULED.value,
    ),
    ScheduledPost(
        user_id=user.id,
        platform=Platform.FACEBOOK.value,
        page_id=facebook.page_id,
        page_name=facebook.account_name,
        message="Read about how we source our beans",
        link="https://example.com/blog/sourcing",
        media_type=MediaType.LINK.value,
        scheduled_time=now + timedelta(days=1),
        status=PostStatus.SCHEDULED.value,
    ),
    ScheduledPost(
        user_id=user.id,
        platform=Platform.FACEBOOK.value,
        page_id=facebook.page_id,
        page_name=facebook.account_name,
        message="Weekend opening hours: 8am - 6pm",
        media_urls=["https://example.com/images/hours.jpg"],
        media_type=MediaType.IMAGE.value,
        scheduled_time=now + timedelta(days=3),
        status=PostStatus.SCHEDULED.value,
        ai_generated=True,
        ai_prompt="Announce weekend opening hours",
    ),
]

db.add(facebook)
db.add_all(posts)
db.commit()

print("Database seeded successfully!")
print(f"  - Demo user: {DEMO_EMAIL} / demo-password")
print(f"  - Facebook page: {facebook.account_name}")
print(f"  - {len(posts)} scheduled posts")

db.close()
