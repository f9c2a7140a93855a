from uuid import uuid4


class TestLikes:
    """POST/DELETE /api/likes"""

    async def test_like_then_duplicate_conflicts(self, client, fake_db, alice, bob, headers_for):
        post = fake_db.add_post(alice["id"])

        response = await client.post("/api/likes", json={"postId": str(post["id"])}, headers=headers_for("user_bob"))
        assert response.status_code == 200
        like = response.json()["like"]
        assert like["post_id"] == str(post["id"])
        assert like["user_id"] == str(bob["id"])

        response = await client.post("/api/likes", json={"postId": str(post["id"])}, headers=headers_for("user_bob"))
        assert response.status_code == 409
        assert response.json()["error"] == "Already liked"
        assert len(fake_db.likes) == 1

    async def test_unlike_never_liked_post_succeeds(self, client, fake_db, alice, headers_for):
        post = fake_db.add_post(alice["id"])

        response = await client.delete("/api/likes", params={"postId": str(post["id"])}, headers=headers_for("user_alice"))
        assert response.status_code == 200
        assert response.json()["success"] is True

    async def test_unlike_removes_only_own_like(self, client, fake_db, alice, bob, headers_for):
        post = fake_db.add_post(alice["id"])
        fake_db.add_like(post["id"], alice["id"])
        fake_db.add_like(post["id"], bob["id"])

        response = await client.delete("/api/likes", params={"postId": str(post["id"])}, headers=headers_for("user_bob"))
        assert response.status_code == 200
        assert [like["user_id"] for like in fake_db.likes.values()] == [alice["id"]]

    async def test_like_missing_post(self, client, alice, headers_for):
        response = await client.post("/api/likes", json={"postId": str(uuid4())}, headers=headers_for("user_alice"))
        assert response.status_code == 404
        assert response.json()["error"] == "Post not found"

    async def test_post_id_required(self, client, alice, headers_for):
        response = await client.post("/api/likes", json={}, headers=headers_for("user_alice"))
        assert response.status_code == 400
        assert response.json()["error"] == "postId is required"

        response = await client.delete("/api/likes", headers=headers_for("user_alice"))
        assert response.status_code == 400

    async def test_requires_authentication(self, client, fake_db, alice):
        post = fake_db.add_post(alice["id"])

        response = await client.post("/api/likes", json={"postId": str(post["id"])})
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert fake_db.likes == {}

    async def test_like_shows_in_feed(self, client, fake_db, alice, headers_for):
        post = fake_db.add_post(alice["id"])
        await client.post("/api/likes", json={"postId": str(post["id"])}, headers=headers_for("user_alice"))

        item = (await client.get("/api/posts", headers=headers_for("user_alice"))).json()["posts"][0]
        assert item["is_liked"] is True
        assert item["likes_count"] == 1
