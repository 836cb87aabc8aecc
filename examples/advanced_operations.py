# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
from s3vfs import Acl, FileSystemOptions, Group, Permission, S3FileProvider
from concurrent.futures import ThreadPoolExecutor
import sys
import uuid

def main():
    if len(sys.argv) != 2:
        print("Usage: python advanced_operations.py s3://<bucket>")
        sys.exit(1)

    provider = S3FileProvider()
    options = FileSystemOptions.builder().server_side_encryption().per_file_locking().build()

    try:
        folder = provider.resolve_file(f"{sys.argv[1].rstrip('/')}/advanced-{uuid.uuid4()}", options)

        # Parallel uploads into a virtual folder
        def upload(i):
            node = folder.resolve_child(f"batch/file-{i}.txt")
            with node.get_output_stream() as out:
                out.write(f"content {i}".encode())
            return node.path

        with ThreadPoolExecutor(max_workers=4) as executor:
            for path in executor.map(upload, range(8)):
                print(f"Uploaded: {path}")

        batch = folder.resolve_child("batch")
        print(f"batch is a {batch.get_type().value} with {len(batch.get_children())} children")

        # Server-side copy of the whole folder, then move it
        copy = folder.resolve_child("batch-copy")
        copy.copy_from(batch)
        print(f"Copied {batch.path} to {copy.path}")
        batch.move_to(folder.resolve_child("batch-moved"))
        print("Moved batch to batch-moved")

        # Append to a file
        log = folder.resolve_child("log.txt")
        for line in (b"first\n", b"second\n"):
            with log.get_output_stream(append=True) as out:
                out.write(line)
        with log.get_input_stream() as f:
            print(f"log.txt: {f.read()!r}")

        # Make it public-read, then read the ACL back
        acl = Acl().allow(Group.OWNER).allow(Group.EVERYONE, Permission.READ)
        log.set_acl(acl)
        print(f"ACL: {log.get_acl()!r}")
        print(f"Signed URL: {log.get_signed_url(300)}")

        print(f"Deleted {folder.delete_all()} node(s)")

    finally:
        provider.close()

if __name__ == "__main__":
    main()
