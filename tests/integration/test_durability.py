"""持久性集成测试

进程重启后实例、任务与审计事件完整。
"""

import os
from datetime import UTC, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from agencybrain.core.store import create_store_group
from httpx import ASGITransport, AsyncClient

NOW = datetime(2024, 1, 8, 14, 0, tzinfo=UTC)


async def _start(db_path: str):
    from agencybrain.gateway.main import create_app

    app = create_app()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group
    app.state.timezone = ZoneInfo("UTC")
    app.state.clock = lambda: NOW
    return app, store_group


class TestDurability:
    async def test_instance_survives_restart(self, tmp_path: Path):
        """应用序列并完成一个任务 -> 关闭 Store -> 重新打开 -> 数据完整"""
        db_path = str(tmp_path / "durable.db")
        os.environ["AGENCYBRAIN_DB_PATH"] = db_path
        os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

        try:
            app1, sg1 = await _start(db_path)
            async with AsyncClient(
                transport=ASGITransport(app=app1),
                base_url="http://test",
            ) as c1:
                await c1.post(
                    "/api/assignees",
                    json={
                        "kind": "staff",
                        "assignee_id": "staff-alice",
                        "agency_id": "agency-1",
                        "display_name": "Alice Adams",
                    },
                )
                template = await c1.post(
                    "/api/templates",
                    json={
                        "agency_id": "agency-1",
                        "name": "Onboarding",
                        "steps": [
                            {"day_number": 0, "action_type": "text", "title": "Hello"},
                            {"day_number": 2, "action_type": "email", "title": "Docs"},
                        ],
                    },
                )
                resp = await c1.post(
                    "/api/sequences/apply",
                    json={
                        "template_id": template.json()["template_id"],
                        "start_date": "2024-01-08",
                        "customer_name": "Durable Customer",
                        "staff_id": "staff-alice",
                    },
                )
                assert resp.status_code == 201
                instance_id = resp.json()["instance_id"]

                tasks = (await c1.get("/api/tasks", params={"instance_id": instance_id})).json()["tasks"]
                await c1.post(f"/api/tasks/{tasks[0]['task_id']}/complete")

            # 关闭连接（模拟进程退出）
            await sg1.conn.close()

            app2, sg2 = await _start(db_path)
            async with AsyncClient(
                transport=ASGITransport(app=app2),
                base_url="http://test",
            ) as c2:
                detail = (await c2.get(f"/api/instances/{instance_id}")).json()

            assert detail["instance"]["customer_name"] == "Durable Customer"
            assert [t["status"] for t in detail["tasks"]] == ["completed", "pending"]
            assert [e["type"] for e in detail["events"]] == ["INSTANCE_CREATED", "TASK_COMPLETED"]
            await sg2.conn.close()
        finally:
            os.environ.pop("AGENCYBRAIN_DB_PATH", None)
            os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)
