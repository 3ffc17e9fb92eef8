"""Create a demo workspace for development/testing."""

from backend import wiki
from canonwiki.engine import OverlayScope

DEMO_WORKSPACE = "demo"
DEMO_MEMBERS = {
    "admin": "admin",
    "ryn": "reviewer",
    "tam": "editor",
    "guest": "viewer",
}

DEMO_ENTITIES = [
    {
        "title": "Mount Calder",
        "type": "location",
        "body": "A volcano on the northern rim of the Ashen Reach. It last erupted "
        "three centuries ago and has smoked quietly ever since.",
        "tags": ["geography", "north"],
    },
    {
        "title": "The Empire",
        "type": "organization",
        "body": "The imperial state ruling the lowlands from the city of Varo.",
        "tags": ["faction"],
    },
    {
        "title": "Sister Ilse",
        "type": "character",
        "body": "A hill-country healer who tends the villages below Mount Calder.",
        "tags": ["npc"],
    },
]


def create_demo_data() -> None:
    """Wipe the demo workspace and create it afresh."""
    engine = wiki.get_engine()
    ws_dir = engine.storage.base_path / "workspaces"
    for path in ws_dir.glob(f"{DEMO_WORKSPACE}.*json"):
        path.unlink()

    engine.create_workspace(DEMO_WORKSPACE, "admin")
    for user_id, role in DEMO_MEMBERS.items():
        if user_id != "admin":
            engine.add_member(DEMO_WORKSPACE, user_id, role, "admin")

    ids = {}
    for entry in DEMO_ENTITIES:
        created = engine.create_entity_with_article(
            DEMO_WORKSPACE, entry["title"], entry["type"], entry["body"], "tam", tags=entry["tags"],
        )
        ids[entry["title"]] = created.entity_id

    first_age = engine.create_era(DEMO_WORKSPACE, "First Age", "tam")
    engine.create_era(DEMO_WORKSPACE, "Age of Ash", "tam")
    engine.create_chapter(DEMO_WORKSPACE, "Chapter 1: The Road North", "tam", position=1)
    engine.create_chapter(DEMO_WORKSPACE, "Chapter 2: Smoke", "tam", position=2)

    empire = engine.create_viewpoint(
        DEMO_WORKSPACE, "The Empire", "ryn",
        description="Official imperial doctrine", entity_id=ids["The Empire"],
    )
    villagers = engine.create_viewpoint(DEMO_WORKSPACE, "Hill villagers", "ryn")

    belief = engine.create_overlay(
        DEMO_WORKSPACE, ids["Mount Calder"], "Mount Calder (Imperial Belief)", "ryn",
        body="A sleeping god, whose slumber is guarded by the Emperor's prayers.",
        truth_flag="propaganda",
        viewpoint_id=empire.id,
    )
    engine.approve_review(DEMO_WORKSPACE, belief.review.id, "admin")

    rumor = engine.create_overlay(
        DEMO_WORKSPACE, ids["Mount Calder"], "Mount Calder (Village Rumor)", "ryn",
        body="The mountain is hollow, and something inside it is waking.",
        truth_flag="rumor",
        viewpoint_id=villagers.id,
        scope=OverlayScope(world_from=first_age.id),
    )
    engine.add_review_comment(
        DEMO_WORKSPACE, rumor.review.id, "Should this stay scoped to the First Age?", "tam",
    )

    engine.set_protection(DEMO_WORKSPACE, ids["The Empire"], "admin", "admin")
    engine.toggle_watch(DEMO_WORKSPACE, ids["Mount Calder"], "tam")
