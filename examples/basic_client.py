"""Basic HTTP client example using sclient."""

import asyncio
import logging

from sclient import AuthInterceptor, CacheInterceptor, ClientConfig, SClient

logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")

config = ClientConfig(
    base_url="https://jsonplaceholder.typicode.com",
    default_headers={"Accept": "application/json"},
    interceptors=[
        AuthInterceptor.bearer(lambda: "demo-token"),
        CacheInterceptor(max_entries=20, default_max_age=60),
    ],
    retry={"max_retries": 2, "retry_delay": 0.5},
    enable_logging=True,
)


class PostService:
    def __init__(self, client: SClient):
        self.client = client

    async def get_posts(self, limit: int = 10):
        """Get posts from the API."""
        response, error = await self.client.get("/posts", params={"_limit": limit})
        if error is not None:
            raise RuntimeError(f"Could not fetch posts: {error}")
        return self.client.decode_json(response)

    async def get_post(self, post_id: int):
        """Get a single post."""
        response, error = await self.client.get(
            f"/posts/{post_id}",
            on_status={404: lambda code, value: print(f"Post {post_id} does not exist")},
        )
        return self.client.decode_json(response) if error is None else None

    async def create_post(self, title: str, body: str, user_id: int):
        """Create a new post."""
        response, error = await self.client.post(
            "/posts", json={"title": title, "body": body, "userId": user_id}
        )
        if error is not None:
            raise RuntimeError(f"Could not create post: {error}")
        return self.client.decode_json(response)


async def main():
    """Main function demonstrating client usage."""
    async with SClient(config) as client:
        service = PostService(client)

        # Get posts
        print("Fetching posts...")
        posts = await service.get_posts(5)
        for post in posts:
            print(f"- {post['title']}")

        print("\n" + "=" * 50 + "\n")

        # Get single post (the second call is served from the cache)
        print("Fetching post #1 twice...")
        post = await service.get_post(1)
        await service.get_post(1)
        print(f"Title: {post['title']}")

        print("\n" + "=" * 50 + "\n")

        # Cancel a slow call by key
        task = asyncio.create_task(client.get("/posts", cancel_key="slow-listing"))
        await asyncio.sleep(0)  # let the call register its key
        client.cancel("slow-listing")
        _, error = await task
        print(f"Cancelled call finished with: {error}")

        print("\n" + "=" * 50 + "\n")

        # Create a post
        print("Creating a new post...")
        new_post = await service.create_post(
            title="Hello from sclient!",
            body="This post was created using sclient.",
            user_id=1,
        )
        print(f"Created post with ID: {new_post['id']}")


if __name__ == "__main__":
    asyncio.run(main())
