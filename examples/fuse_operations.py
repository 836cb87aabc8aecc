# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved
'''
This example reads and writes files through an S3 bucket mounted with s3vfs.

Setup:
    # Install the package
    pip install s3vfs

    # Install FUSE on your system
    # On Ubuntu/Debian:
    sudo apt-get install fuse

    # Credentials come from the standard AWS chain
    # (AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY or ~/.aws/credentials)

    # Mount a bucket in another terminal
    python -m s3vfs.fuse s3://my-bucket /mnt/my-bucket

    # Or an S3-compatible store
    python -m s3vfs.fuse s3://localhost:9000/my-bucket /mnt/my-bucket --http

Usage:
    python fuse_operations.py /mnt/my-bucket

Troubleshooting:
    # Log every FUSE operation
    python -m s3vfs.fuse s3://my-bucket /mnt/my-bucket --trace

    # Unmount when done
    fusermount -u /mnt/my-bucket
'''
import sys
import os

def main():
    if len(sys.argv) != 2:
        print("Usage: python fuse_operations.py <mountpoint>")
        sys.exit(1)

    mountpoint = sys.argv[1]
    folder = os.path.join(mountpoint, "example-dir")
    example_file = os.path.join(folder, "example.txt")

    # Create a folder and write a file into it
    try:
        os.makedirs(folder, exist_ok=True)
        with open(example_file, 'w') as f:
            f.write("Hello FUSE")
        print(f"File created and written: {example_file}")
    except OSError as e:
        print(f"Write operation failed: {e}")

    # Read from the file and list the folder
    try:
        with open(example_file, 'r') as f:
            content = f.read()
        print(f"Content read from file: {content}")
        print(f"Folder entries: {os.listdir(folder)}")
    except OSError as e:
        print(f"Read operation failed: {e}")

    # Delete the file and the folder
    try:
        os.remove(example_file)
        os.rmdir(folder)
        print(f"Removed: {folder}")
    except OSError as e:
        print(f"Delete operation failed: {e}")

if __name__ == '__main__':
    main()
