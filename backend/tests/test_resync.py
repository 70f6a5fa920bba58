from support import make_context, seed_users

from epicflow.services import comments as comment_service
from epicflow.services import epics as epic_service
from epicflow.services import tasks as task_service
from epicflow.services.oracle import FactSync, InMemoryOracle
from epicflow.services.resync import resync_oracle


def test_resync_rebuilds_facts_in_a_fresh_oracle():
    context = make_context()
    seeded = seed_users(context)
    db = context.session_factory()
    manager, dev = seeded["manager"], seeded["dev"]

    epic = epic_service.create_epic(db, context.facts, "Resync", manager)
    task = task_service.create_task(db, context.facts, epic_id=epic.id, title="T", description="", creator=manager)
    task_service.assign_task(db, context.facts, task.id, dev.user_id)
    comment = comment_service.create_comment(db, context.facts, task_id=task.id, content="c", author=dev)

    fresh = InMemoryOracle()
    counts = resync_oracle(db, FactSync(fresh))
    db.close()

    assert counts == {"users": 4, "epics": 1, "tasks": 1, "comments": 1}
    assert fresh.users.keys() == context.oracle.users.keys()
    assert fresh.instances == context.oracle.instances
    assert fresh.relationships == context.oracle.relationships
    assert fresh.has_instance_role(manager.user_id, "Manager", f"Epic:{epic.id}")
    assert fresh.has_instance_role(dev.user_id, "Developer", f"Task:{task.id}")
    assert fresh.has_instance_role(dev.user_id, "Developer", f"Comment:{comment.id}")
    assert fresh.check(dev.user_id, "log-work", f"Task:{task.id}")
