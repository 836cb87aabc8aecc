# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
from s3vfs import FileSystemOptions, S3FileProvider
import sys
import uuid

def main():
    if len(sys.argv) != 2:
        print("Usage: python basic_operations.py s3://<bucket>")
        sys.exit(1)

    # Create a provider; handles are shared per bucket and options
    provider = S3FileProvider()
    options = FileSystemOptions(create_bucket=True)

    try:
        folder = provider.resolve_file(f"{sys.argv[1].rstrip('/')}/example-{uuid.uuid4()}", options)

        # Write a file
        node = folder.resolve_child("hello.txt")
        with node.get_output_stream() as out:
            out.write(b"Hello, World!")
        print(f"Uploaded: {node.path}")

        # Get file metadata
        print(f"Size: {node.get_content_size()} bytes")
        print(f"Last modified: {node.get_last_modified_time()}")
        print(f"MD5: {node.get_md5_hash()}")

        # Read it back
        with node.get_input_stream() as f:
            print(f"Downloaded content: {f.read().decode()}")

        # List the folder
        print("Children:")
        for child in folder.get_children():
            print(f"- {child.base_name} ({child.get_type().value})")

        # Delete everything we created
        print(f"Deleted {folder.delete_all()} node(s)")

    finally:
        provider.close()

if __name__ == "__main__":
    main()
