"""bicepguardのコマンドラインエントリポイント。"""

if __name__ == "__main__":
    from bicepguard.cli import main

    main()
