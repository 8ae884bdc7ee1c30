from locust import HttpUser, task, between

SCAM_TEXT = "Congratulations! You've won $1,000,000! Click here to claim your prize!"

# 1x1 transparent PNG
PIXEL_DATA_URI = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class FraudDetectUser(HttpUser):
    # Simulates users waiting between 1 and 3 seconds between requests
    wait_time = between(1, 3)

    @task(5)
    def detect_text(self):
        self.client.post("/api/text-detect", json={"text": SCAM_TEXT})

    @task(2)
    def detect_image(self):
        self.client.post("/api/image-detect", json={"imageData": PIXEL_DATA_URI})

    @task(1)
    def load_openapi(self):
        """Simulates developers/tools fetching the API schema."""
        self.client.get("/openapi.json")


__all__ = ["FraudDetectUser"]
