TEST_VERSION = "1.2.3"
TEST_ACCOUNT_ID = "123456789012"
TEST_REGION = "us-east-1"
TEST_BUNDLE_BUCKET = "test-dbbsoft-bundles"
