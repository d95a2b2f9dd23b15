"""Tests for the REST API v1 endpoints."""

import json
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from web import create_app
from web import scheduler as web_scheduler


class APITestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.app = create_app({"TESTING": True, "DATA_DIR": self.tmpdir})
        self.client = self.app.test_client()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def post(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def add_product(self, **fields):
        payload = {
            "name": "Chicken Soup",
            "time_type": "hours",
            "ready_time_minutes": 60,
            "discard_time_minutes": 240,
        }
        payload.update(fields)
        response = self.post("/api/v1/products", payload)
        self.assertEqual(response.status_code, 201)
        return response.get_json()

    def add_location(self, **fields):
        payload = {"name": "Main Kitchen", "timezone": "UTC"}
        payload.update(fields)
        response = self.post("/api/v1/locations", payload)
        self.assertEqual(response.status_code, 201)
        return response.get_json()

    def add_tag(self, product, location, made_at):
        response = self.post("/api/v1/tags", {
            "product_id": product["product_id"],
            "location_id": location["location_id"],
            "created_by": "emp_1",
            "made_at": made_at.isoformat(),
        })
        self.assertEqual(response.status_code, 201)
        return response.get_json()


class TestAPIProducts(APITestCase):

    def test_list_products_returns_json(self):
        response = self.client.get("/api/v1/products")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content_type, "application/json")
        self.assertEqual(response.get_json(), [])

    def test_add_and_get_product(self):
        product = self.add_product(time_type="end_of_day", day_offset=1)
        response = self.client.get(f"/api/v1/products/{product['product_id']}")
        data = response.get_json()
        self.assertEqual(data["time_type"], "end_of_day")
        self.assertEqual(data["day_offset"], 1)

    def test_get_product_not_found(self):
        response = self.client.get("/api/v1/products/nonexistent")
        self.assertEqual(response.status_code, 404)
        self.assertIn("error", response.get_json())

    def test_add_product_missing_name(self):
        response = self.post("/api/v1/products", {"time_type": "hours"})
        self.assertEqual(response.status_code, 400)

    def test_add_product_invalid_policy(self):
        response = self.post("/api/v1/products", {
            "name": "Bad", "ready_time_minutes": -5, "discard_time_minutes": 30,
        })
        self.assertEqual(response.status_code, 400)
        response = self.post("/api/v1/products", {"name": "Bad", "time_type": "weekly"})
        self.assertEqual(response.status_code, 400)

    def test_delete_product(self):
        product = self.add_product()
        response = self.client.delete(f"/api/v1/products/{product['product_id']}")
        self.assertEqual(response.status_code, 200)
        response = self.client.delete(f"/api/v1/products/{product['product_id']}")
        self.assertEqual(response.status_code, 404)


class TestAPILocations(APITestCase):

    def test_add_and_list(self):
        self.add_location(timezone="Europe/London")
        data = self.client.get("/api/v1/locations").get_json()
        self.assertEqual([loc["timezone"] for loc in data], ["Europe/London"])

    def test_unknown_timezone_rejected(self):
        response = self.post("/api/v1/locations", {"name": "X", "timezone": "Mars/Olympus"})
        self.assertEqual(response.status_code, 400)


class TestAPITags(APITestCase):

    def setUp(self):
        super().setUp()
        self.product = self.add_product()
        self.location = self.add_location()
        self.now = datetime.now(timezone.utc)

    def test_create_tag_resolves_times(self):
        made = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        tag = self.add_tag(self.product, self.location, made)
        self.assertEqual(tag["ready_at"], "2024-01-01T11:00:00+00:00")
        self.assertEqual(tag["discard_at"], "2024-01-01T14:00:00+00:00")
        self.assertEqual(tag["status"]["status"], "expired")
        self.assertEqual(tag["product_name"], "Chicken Soup")

    def test_create_tag_missing_fields(self):
        response = self.post("/api/v1/tags", {"product_id": self.product["product_id"]})
        self.assertEqual(response.status_code, 400)
        self.assertIn("location_id", response.get_json()["error"])

    def test_create_tag_unknown_product(self):
        response = self.post("/api/v1/tags", {
            "product_id": "nope",
            "location_id": self.location["location_id"],
            "created_by": "emp_1",
        })
        self.assertEqual(response.status_code, 404)

    def test_create_tag_bad_quantity(self):
        response = self.post("/api/v1/tags", {
            "product_id": self.product["product_id"],
            "location_id": self.location["location_id"],
            "created_by": "emp_1",
            "quantity": 0,
        })
        self.assertEqual(response.status_code, 400)

    def test_list_filter_and_summary(self):
        self.add_tag(self.product, self.location, self.now - timedelta(hours=5))
        self.add_tag(self.product, self.location, self.now)

        expired = self.client.get("/api/v1/tags?status=expired").get_json()
        self.assertEqual(len(expired), 1)
        self.assertEqual(expired[0]["status"]["time_remaining"], "EXPIRED")

        summary = self.client.get("/api/v1/tags/summary").get_json()
        self.assertEqual(summary["total"], 2)
        self.assertEqual(summary["expired"], 1)
        self.assertEqual(summary["preparing"], 1)

    def test_invalid_status_filter(self):
        response = self.client.get("/api/v1/tags?status=rotten")
        self.assertEqual(response.status_code, 400)

    def test_status_print_and_discard(self):
        tag = self.add_tag(self.product, self.location, self.now)
        tag_id = tag["tag_id"]

        status = self.client.get(f"/api/v1/tags/{tag_id}/status").get_json()
        self.assertEqual(status["status"], "preparing")

        printed = self.client.post(f"/api/v1/tags/{tag_id}/print").get_json()
        self.assertTrue(printed["printed"])

        discarded = self.client.post(f"/api/v1/tags/{tag_id}/discard").get_json()
        self.assertEqual(discarded["lifecycle_state"], "discarded")
        self.assertEqual(self.client.get("/api/v1/tags").get_json(), [])

    def test_missing_tag(self):
        self.assertEqual(self.client.get("/api/v1/tags/tag_x/status").status_code, 404)
        self.assertEqual(self.client.post("/api/v1/tags/tag_x/print").status_code, 404)
        self.assertEqual(self.client.post("/api/v1/tags/tag_x/discard").status_code, 404)


class TestAPINotifications(APITestCase):

    def setUp(self):
        super().setUp()
        self.product = self.add_product()
        self.location = self.add_location()
        now = datetime.now(timezone.utc)
        self.expired = self.add_tag(self.product, self.location, now - timedelta(hours=5))
        self.expiring = self.add_tag(
            self.product, self.location, now - timedelta(minutes=230),
        )

    def test_queue_ordered_critical_first(self):
        data = self.client.get("/api/v1/notifications").get_json()
        ids = [e["event_id"] for e in data["queue"]]
        self.assertEqual(ids, [
            f"expired_{self.expired['tag_id']}",
            f"expiring_{self.expiring['tag_id']}",
        ])
        self.assertEqual(data["front"]["title"], "PRODUCT EXPIRED")
        self.assertFalse(data["status"]["stale"])

    def test_acknowledge_critical_discards_tag(self):
        self.client.get("/api/v1/notifications")
        event_id = f"expired_{self.expired['tag_id']}"

        data = self.client.post(f"/api/v1/notifications/{event_id}/acknowledge").get_json()
        self.assertTrue(data["acknowledged"])
        self.assertEqual(data["event"]["event_id"], event_id)

        tags = self.client.get("/api/v1/tags").get_json()
        self.assertEqual([t["tag_id"] for t in tags], [self.expiring["tag_id"]])

        queue = self.client.get("/api/v1/notifications?refresh=1").get_json()["queue"]
        self.assertEqual([e["severity"] for e in queue], ["warning"])

    def test_stale_acknowledge(self):
        data = self.client.post("/api/v1/notifications/expired_nope/acknowledge").get_json()
        self.assertEqual(data, {"acknowledged": False, "event": None})

    def test_location_scope(self):
        other = self.add_location(name="Bar")
        data = self.client.get(
            f"/api/v1/notifications?location_id={other['location_id']}"
        ).get_json()
        self.assertEqual(data["queue"], [])
        self.assertEqual(data["status"]["scope"], other["location_id"])

    def test_unknown_location_scope_creates_no_loop(self):
        before = len(web_scheduler._alerts)
        for i in range(5):
            response = self.client.get(f"/api/v1/notifications?location_id=bogus{i}")
            self.assertEqual(response.status_code, 404)
        response = self.client.post(
            "/api/v1/notifications/expired_x/acknowledge?location_id=bogus",
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(len(web_scheduler._alerts), before)

    def test_stop_scope_loop(self):
        url = f"/api/v1/notifications?location_id={self.location['location_id']}"
        self.client.get(url)
        self.assertEqual(self.client.delete(url).get_json(), {"stopped": True})
        self.assertEqual(self.client.delete(url).get_json(), {"stopped": False})

    def test_deleting_location_stops_its_loop(self):
        location_id = self.location["location_id"]
        self.client.get(f"/api/v1/notifications?location_id={location_id}")
        self.client.delete(f"/api/v1/locations/{location_id}")
        response = self.client.delete(f"/api/v1/notifications?location_id={location_id}")
        self.assertEqual(response.get_json(), {"stopped": False})


class TestAPIInputValidation(APITestCase):

    def test_non_text_product_name_rejected(self):
        response = self.post("/api/v1/products", {
            "name": 123, "ready_time_minutes": 0, "discard_time_minutes": 60,
        })
        self.assertEqual(response.status_code, 400)
        response = self.post("/api/v1/products", {"name": "Soup", "category": ["a"]})
        self.assertEqual(response.status_code, 400)

        listing = self.client.get("/api/v1/products")
        self.assertEqual(listing.status_code, 200)
        self.assertEqual(listing.get_json(), [])

    def test_blank_product_name_rejected(self):
        response = self.post("/api/v1/products", {"name": "   "})
        self.assertEqual(response.status_code, 400)

    def test_non_text_location_fields_rejected(self):
        self.assertEqual(self.post("/api/v1/locations", {"name": 7}).status_code, 400)
        self.assertEqual(
            self.post("/api/v1/locations", {"name": "Bar", "phone": 5551234}).status_code, 400,
        )
        listing = self.client.get("/api/v1/locations")
        self.assertEqual(listing.status_code, 200)
        self.assertEqual(listing.get_json(), [])

    def test_non_object_body_rejected(self):
        self.assertEqual(self.post("/api/v1/products", ["Soup"]).status_code, 400)
        self.assertEqual(self.post("/api/v1/tags", "tag").status_code, 400)

    def test_non_text_tag_fields_rejected(self):
        product = self.add_product()
        location = self.add_location()
        response = self.post("/api/v1/tags", {
            "product_id": product["product_id"],
            "location_id": location["location_id"],
            "created_by": "emp_1",
            "batch_number": 42,
        })
        self.assertEqual(response.status_code, 400)

    def test_client_timestamps_ignored(self):
        response = self.post("/api/v1/products", {
            "name": "Soup",
            "discard_time_minutes": 60,
            "created_at": "yesterday",
            "updated_at": "not-a-date",
        })
        self.assertEqual(response.status_code, 201)
        created = datetime.fromisoformat(response.get_json()["created_at"])
        self.assertLess(abs(datetime.now(timezone.utc) - created), timedelta(minutes=5))

        response = self.post("/api/v1/locations", {"name": "Bar", "created_at": "soon"})
        self.assertEqual(response.status_code, 201)


class TestAPIEditing(APITestCase):

    def setUp(self):
        super().setUp()
        self.product = self.add_product()
        self.location = self.add_location()

    def put(self, url, payload):
        return self.client.put(url, data=json.dumps(payload), content_type="application/json")

    def test_update_product_fields(self):
        url = f"/api/v1/products/{self.product['product_id']}"
        response = self.put(url, {"name": "Tomato Soup", "allergens": "celery", "is_active": "0"})
        self.assertEqual(response.status_code, 200)
        data = self.client.get(url).get_json()
        self.assertEqual(data["name"], "Tomato Soup")
        self.assertEqual(data["allergens"], "celery")
        self.assertFalse(data["is_active"])
        self.assertEqual(data["discard_time_minutes"], 240)

    def test_update_policy_partially(self):
        url = f"/api/v1/products/{self.product['product_id']}"
        data = self.put(url, {"discard_time_minutes": 120}).get_json()
        self.assertEqual(data["ready_time_minutes"], 60)
        self.assertEqual(data["discard_time_minutes"], 120)

    def test_switch_policy_type(self):
        url = f"/api/v1/products/{self.product['product_id']}"
        data = self.put(url, {"time_type": "end_of_day", "day_offset": 2}).get_json()
        self.assertEqual(data["time_type"], "end_of_day")
        self.assertEqual(data["day_offset"], 2)
        self.assertNotIn("ready_time_minutes", data)

    def test_update_invalid_policy_rejected(self):
        url = f"/api/v1/products/{self.product['product_id']}"
        self.assertEqual(self.put(url, {"ready_time_minutes": -5}).status_code, 400)
        self.assertEqual(self.put(url, {"discard_time_minutes": 30.5}).status_code, 400)
        self.assertEqual(self.put(url, {"time_type": "weekly"}).status_code, 400)
        self.assertEqual(self.client.get(url).get_json()["discard_time_minutes"], 240)

    def test_update_missing_product(self):
        self.assertEqual(self.put("/api/v1/products/nope", {"name": "X"}).status_code, 404)

    def test_tag_times_frozen_after_policy_change(self):
        made = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        tag = self.add_tag(self.product, self.location, made)

        url = f"/api/v1/products/{self.product['product_id']}"
        self.assertEqual(self.put(url, {"ready_time_minutes": 0, "discard_time_minutes": 30}).status_code, 200)

        tags = self.client.get("/api/v1/tags").get_json()
        self.assertEqual(tags[0]["tag_id"], tag["tag_id"])
        self.assertEqual(tags[0]["ready_at"], "2024-01-01T11:00:00+00:00")
        self.assertEqual(tags[0]["discard_at"], "2024-01-01T14:00:00+00:00")

        newer = self.add_tag(self.product, self.location, made)
        self.assertEqual(newer["discard_at"], "2024-01-01T10:30:00+00:00")

    def test_update_location(self):
        url = f"/api/v1/locations/{self.location['location_id']}"
        response = self.put(url, {"name": "Prep Kitchen", "timezone": "Europe/London"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["timezone"], "Europe/London")
        self.assertEqual(self.put(url, {"timezone": "Mars/Olympus"}).status_code, 400)
        self.assertEqual(self.put(url, {"name": 1}).status_code, 400)
        self.assertEqual(self.put("/api/v1/locations/nope", {"name": "X"}).status_code, 404)

    def test_delete_location(self):
        url = f"/api/v1/locations/{self.location['location_id']}"
        self.assertEqual(self.client.delete(url).status_code, 200)
        self.assertEqual(self.client.get("/api/v1/locations").get_json(), [])
        self.assertEqual(self.client.delete(url).status_code, 404)


if __name__ == "__main__":
    unittest.main()
